"""Order aggregate: locked-in line items and two correlated state machines.

Line items and prices are written once at checkout and never recomputed, even
if the catalogue price changes later. After creation only the status fields,
the payment back-reference and the tracking number change.

Order status (forward only):
    CREATED → PAYMENT_PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    CREATED → CONFIRMED (payment settled before a pending mark was recorded)
    CANCELLED from CREATED, PAYMENT_PENDING, CONFIRMED, PROCESSING
    CANCELLED back to its previous status only when returning stock failed

Payment status:
    PENDING → PAID | FAILED,  FAILED → PENDING (retry),  PAID → REFUNDED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from storefront.domain import storefront
from storefront.errors import InvalidStatusTransition
from storefront.order.events import (
    OrderCancellationReverted,
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderPaymentFailed,
    OrderPaymentPending,
    OrderPaymentRefunded,
    OrderPlaced,
    OrderProcessing,
    OrderShipped,
    TrackingNumberAttached,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    CREATED = "CREATED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderPaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


_VALID_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.PAYMENT_PENDING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.PAYMENT_PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Statuses a settled payment may advance to CONFIRMED
_AWAITING_PAYMENT = {OrderStatus.CREATED, OrderStatus.PAYMENT_PENDING}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@storefront.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout; later profile changes do not affect it."""

    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=32)
    address_line1 = String(required=True, max_length=255)
    address_line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderItem:
    variant_id = Identifier(required=True)
    sku = String(max_length=64)
    quantity = Integer(required=True, min_value=1)
    supplier_id = Identifier()
    price_at_purchase = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return round(self.price_at_purchase * self.quantity, 2)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    status = String(choices=OrderStatus, default=OrderStatus.CREATED.value)
    payment_status = String(choices=OrderPaymentStatus, default=OrderPaymentStatus.PENDING.value)
    payment_id = Identifier()
    shipping_address = ValueObject(ShippingAddress, required=True)
    tracking_number = String(max_length=255)
    notes = String(max_length=500)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, user_id, lines, shipping_address, notes=None, currency="USD"):
        """Create an order from reserved cart lines.

        Args:
            user_id: Owner of the order.
            lines: Dicts with variant_id, sku, quantity, supplier_id and
                price_at_purchase, one per reserved cart line.
            shipping_address: ShippingAddress value object.
        """
        if not lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        items = [OrderItem(**line) for line in lines]
        order = cls(
            user_id=user_id,
            items=items,
            total_amount=round(sum(item.line_total for item in items), 2),
            currency=currency,
            status=OrderStatus.CREATED.value,
            payment_status=OrderPaymentStatus.PENDING.value,
            shipping_address=shipping_address,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                total_amount=order.total_amount,
                currency=currency,
                item_count=order.total_items,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in _VALID_TRANSITIONS[OrderStatus(self.status)]

    @property
    def is_cancellable(self) -> bool:
        return self.can_transition_to(OrderStatus.CANCELLED)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID.value

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if not self.can_transition_to(target):
            raise InvalidStatusTransition(current.value, target.value)

    def _touch(self) -> datetime:
        now = datetime.now(UTC)
        self.updated_at = now
        return now

    # -------------------------------------------------------------------
    # Payment-driven transitions
    # -------------------------------------------------------------------
    def begin_payment(self, payment_id) -> None:
        """A payment attempt was opened against this order."""
        if self.is_paid:
            raise ValidationError({"payment_status": ["Order is already paid"]})

        current = OrderStatus(self.status)
        if current not in _AWAITING_PAYMENT:
            raise InvalidStatusTransition(current.value, OrderStatus.PAYMENT_PENDING.value)

        if current == OrderStatus.CREATED:
            self.status = OrderStatus.PAYMENT_PENDING.value
        # A new attempt after a failed one starts over
        self.payment_status = OrderPaymentStatus.PENDING.value
        self._touch()
        self.raise_(OrderPaymentPending(order_id=str(self.id), payment_id=str(payment_id)))

    def record_payment_settled(self, payment_id) -> None:
        """Mark the order paid. Advances to CONFIRMED only while awaiting payment."""
        now = self._touch()
        self.payment_status = OrderPaymentStatus.PAID.value
        self.payment_id = payment_id

        if OrderStatus(self.status) in _AWAITING_PAYMENT:
            self._assert_can_transition(OrderStatus.CONFIRMED)
            self.status = OrderStatus.CONFIRMED.value
            self.raise_(OrderConfirmed(order_id=str(self.id), payment_id=str(payment_id), confirmed_at=now))

    def record_payment_failed(self, payment_id, reason=None) -> None:
        """Payment failed. Status and reserved stock stay put so the customer can retry."""
        if self.is_paid:
            raise ValidationError({"payment_status": ["A paid order cannot be marked as failed"]})

        self.payment_status = OrderPaymentStatus.FAILED.value
        self._touch()
        self.raise_(OrderPaymentFailed(order_id=str(self.id), payment_id=str(payment_id), reason=reason))

    def record_refunded(self, payment_id, refunded_amount) -> None:
        """Fully refunded. Does not touch order status or stock."""
        if not self.is_paid:
            raise ValidationError({"payment_status": ["Only a paid order can be refunded"]})

        self.payment_status = OrderPaymentStatus.REFUNDED.value
        self._touch()
        self.raise_(
            OrderPaymentRefunded(
                order_id=str(self.id),
                payment_id=str(payment_id),
                refunded_amount=refunded_amount,
            )
        )

    # -------------------------------------------------------------------
    # Operator-driven transitions
    # -------------------------------------------------------------------
    def mark_processing(self) -> None:
        self._assert_can_transition(OrderStatus.PROCESSING)
        self.status = OrderStatus.PROCESSING.value
        self._touch()
        self.raise_(OrderProcessing(order_id=str(self.id)))

    def ship(self, tracking_number=None) -> None:
        self._assert_can_transition(OrderStatus.SHIPPED)
        now = self._touch()
        self.status = OrderStatus.SHIPPED.value
        if tracking_number:
            self.tracking_number = tracking_number
        self.raise_(OrderShipped(order_id=str(self.id), tracking_number=self.tracking_number, shipped_at=now))

    def deliver(self) -> None:
        self._assert_can_transition(OrderStatus.DELIVERED)
        now = self._touch()
        self.status = OrderStatus.DELIVERED.value
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))

    def attach_tracking_number(self, tracking_number) -> None:
        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            raise ValidationError({"tracking_number": ["Cannot track a cancelled order"]})

        self.tracking_number = tracking_number
        self._touch()
        self.raise_(TrackingNumberAttached(order_id=str(self.id), tracking_number=tracking_number))

    def cancel(self, cancelled_by, reason=None) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)
        now = self._touch()
        self.status = OrderStatus.CANCELLED.value
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                user_id=str(self.user_id),
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    def reinstate(self, status) -> None:
        """Undo a cancellation whose stock release did not complete."""
        previous = OrderStatus(status)
        cancellable_from = OrderStatus.CANCELLED in _VALID_TRANSITIONS[previous]
        if OrderStatus(self.status) != OrderStatus.CANCELLED or not cancellable_from:
            raise InvalidStatusTransition(self.status, previous.value)

        self.status = previous.value
        self.cancelled_by = None
        self.cancellation_reason = None
        self._touch()
        self.raise_(OrderCancellationReverted(order_id=str(self.id), status=previous.value))
