"""Order cancellation: commands and handlers.

``CancelOrder`` only flips the status; ``OrderService.cancel_order`` returns
the stock afterwards. The version check on the aggregate lets exactly one of
two racing cancels through, so stock is released once. ``ReinstateOrder``
puts the previous status back when that release cannot be completed.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order, OrderStatus


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    cancelled_by = String(required=True, max_length=50)
    reason = String(max_length=500)


@storefront.command(part_of="Order")
class ReinstateOrder:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)


@storefront.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous_status = order.status
        order.cancel(cancelled_by=command.cancelled_by, reason=command.reason)
        repo.add(order)
        return previous_status

    @handle(ReinstateOrder)
    def reinstate_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.reinstate(command.status)
        repo.add(order)
