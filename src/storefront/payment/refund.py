"""Refund recording: command and handler.

Processed after the gateway has confirmed the refund. A refund that brings
``refunded_amount`` up to the payment amount marks the payment REFUNDED and
the order's payment status REFUNDED; order status and stock are untouched.
A refund id seen before is a redelivery and is skipped.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order
from storefront.payment.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Payment")
class RecordRefund:
    payment_id = Identifier(required=True)
    refund_id = String(required=True, max_length=255)
    amount = Float(required=True, min_value=0.01)
    reason = String(max_length=500)


@storefront.command_handler(part_of=Payment)
class RecordRefundHandler:
    @handle(RecordRefund)
    def record_refund(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)

        if payment.has_refund(command.refund_id):
            logger.info("refund_duplicate", payment_id=str(payment.id), refund_id=command.refund_id)
            return PaymentStatus(payment.status) == PaymentStatus.REFUNDED

        fully_refunded = payment.record_refund(
            refund_id=command.refund_id,
            amount=command.amount,
            reason=command.reason,
        )
        repo.add(payment)

        if fully_refunded:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(payment.order_id)
            # A payment settled against a cancelled order never made it PAID
            if order.is_paid and str(order.payment_id) == str(payment.id):
                order.record_refunded(payment.id, payment.refunded_amount)
                order_repo.add(order)

        return fully_refunded
