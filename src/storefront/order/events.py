"""Domain events for the Order aggregate.

Raised on every status change so downstream consumers (notifications,
supplier forwarding) can react without polling the order.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """Stock was reserved and an order was created from the user's cart."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    item_count = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaymentPending:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)


@storefront.event(part_of="Order")
class OrderConfirmed:
    """Payment settled; the order can be forwarded to suppliers."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    confirmed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    reason = String()


@storefront.event(part_of="Order")
class OrderPaymentRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    refunded_amount = Float(required=True)


@storefront.event(part_of="Order")
class OrderProcessing:
    __version__ = 1

    order_id = Identifier(required=True)


@storefront.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String()
    shipped_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled and its reserved stock returned."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String()
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class TrackingNumberAttached:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String(required=True)


@storefront.event(part_of="Order")
class OrderCancellationReverted:
    """Stock could not be returned, so the cancellation was rolled back."""

    __version__ = 1

    order_id = Identifier(required=True)
    status = String(required=True)
