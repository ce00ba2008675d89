"""Order placement: command and handler.

The handler runs after every cart line has been reserved in the inventory
ledger. It persists the Order and clears the Cart in one unit of work; if the
cart no longer matches the snapshot the reservations were made from, nothing
is written and the caller releases the reservations.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.domain import storefront
from storefront.errors import ReservationConflict
from storefront.order.order import Order, ShippingAddress


@storefront.command(part_of="Order")
class PlaceOrder:
    """Create an order from reserved cart lines."""

    user_id = Identifier(required=True)
    lines = Text(required=True)  # JSON: list of line dicts with locked prices
    cart_snapshot = Text(required=True)  # JSON: sorted [variant_id, quantity] pairs
    shipping_address = Text(required=True)  # JSON: address dict
    notes = String(max_length=500)
    currency = String(max_length=3, default="USD")


@storefront.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        cart_repo = current_domain.repository_for(Cart)
        cart = cart_repo.for_user(command.user_id)

        expected = [(variant_id, quantity) for variant_id, quantity in json.loads(command.cart_snapshot)]
        if cart is None or cart.snapshot() != expected:
            raise ReservationConflict("Cart changed during checkout", user_id=str(command.user_id))

        order = Order.place(
            user_id=command.user_id,
            lines=json.loads(command.lines),
            shipping_address=ShippingAddress(**json.loads(command.shipping_address)),
            notes=command.notes,
            currency=command.currency or "USD",
        )
        current_domain.repository_for(Order).add(order)

        cart.clear()
        cart_repo.add(cart)
        return str(order.id)
