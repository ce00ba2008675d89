"""Reconciliation: apply a gateway outcome to Payment and Order exactly once.

Outcomes arrive from synchronous verify calls and from at-least-once webhooks,
in any order. The first settled outcome for an attempt wins:

* the same outcome again is a no-op (``duplicate=True``)
* a different outcome after settlement is logged as an anomaly and dropped
* PENDING never changes anything

On the first COMPLETED the payment settles, the order becomes PAID with this
payment as its ``payment_id``, and an order still awaiting payment moves to
CONFIRMED, all in one unit of work. A COMPLETED outcome for a cancelled order
settles the payment only and is reported with ``needs_refund=True``. On FAILED
the order's payment status becomes FAILED while its status and reserved stock
are left for a retry.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order, OrderPaymentStatus, OrderStatus
from storefront.payment.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    payment_id: str
    status: str
    applied: bool
    duplicate: bool = False
    needs_refund: bool = False


@storefront.command(part_of="Payment")
class ReconcilePayment:
    payment_id = Identifier(required=True)
    status = String(required=True, choices=PaymentStatus)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    source = String(max_length=50, default="verify")  # verify, webhook


@storefront.command_handler(part_of=Payment)
class ReconcilePaymentHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        current = PaymentStatus(payment.status)
        outcome = PaymentStatus(command.status)

        if outcome == PaymentStatus.PENDING:
            return ReconciliationResult(payment_id=str(payment.id), status=payment.status, applied=False)

        if current != PaymentStatus.PENDING:
            already_completed = outcome == PaymentStatus.COMPLETED and current == PaymentStatus.REFUNDED
            if outcome == current or already_completed:
                logger.info(
                    "payment_outcome_duplicate",
                    payment_id=str(payment.id),
                    status=current.value,
                    source=command.source,
                )
                return ReconciliationResult(
                    payment_id=str(payment.id), status=payment.status, applied=False, duplicate=True
                )

            logger.warning(
                "payment_outcome_anomaly",
                payment_id=str(payment.id),
                settled_status=current.value,
                incoming_status=outcome.value,
                source=command.source,
            )
            return ReconciliationResult(payment_id=str(payment.id), status=payment.status, applied=False)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(payment.order_id)

        if outcome == PaymentStatus.COMPLETED:
            if order.payment_status in (OrderPaymentStatus.PAID.value, OrderPaymentStatus.REFUNDED.value):
                # Another attempt already settled this order
                logger.warning(
                    "payment_outcome_anomaly",
                    payment_id=str(payment.id),
                    order_id=str(order.id),
                    settled_by=str(order.payment_id),
                    incoming_status=outcome.value,
                    source=command.source,
                )
                return ReconciliationResult(payment_id=str(payment.id), status=payment.status, applied=False)

            if order.status == OrderStatus.CANCELLED.value:
                # Captured for a cancelled order: settle the payment, leave the order
                payment.complete(transaction_id=command.transaction_id)
                repo.add(payment)
                logger.warning(
                    "payment_outcome_anomaly",
                    payment_id=str(payment.id),
                    order_id=str(order.id),
                    reason="order_cancelled",
                    incoming_status=outcome.value,
                    source=command.source,
                )
                return ReconciliationResult(
                    payment_id=str(payment.id), status=payment.status, applied=True, needs_refund=True
                )

            payment.complete(transaction_id=command.transaction_id)
            order.record_payment_settled(payment.id)
        else:
            payment.fail(reason=command.failure_reason)
            if order.payment_status in (OrderPaymentStatus.PENDING.value, OrderPaymentStatus.FAILED.value):
                order.record_payment_failed(payment.id, reason=payment.failure_reason)

        repo.add(payment)
        order_repo.add(order)

        logger.info(
            "payment_reconciled",
            payment_id=str(payment.id),
            order_id=str(order.id),
            status=payment.status,
            order_status=order.status,
            source=command.source,
        )
        return ReconciliationResult(payment_id=str(payment.id), status=payment.status, applied=True)
