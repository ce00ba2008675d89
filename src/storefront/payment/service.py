"""Payment application service: intents, verification, refunds and webhooks.

Gateway calls happen outside Protean units of work; their results are applied
through commands so each state change commits atomically:

    create_intent   InitiatePayment → gateway.create_intent → AttachProviderReference
    verify          gateway.verify → ReconcilePayment
    refund          gateway.refund → RecordRefund
    handle_webhook  verify signature → decode → lookup by reference → ReconcilePayment

A gateway timeout never fails a payment: the record stays PENDING and the
caller retries with the same idempotency key or verifies later.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.auth import Actor, ensure_owner_or_admin
from storefront.errors import GatewayError, GatewayRejected, InvalidPaymentState, OrderNotFound, PaymentNotFound
from storefront.gateway.port import VerifyResult
from storefront.gateway.registry import GatewayRegistry, select_provider
from storefront.order.order import Order
from storefront.payment.initiation import AttachProviderReference, InitiatePayment
from storefront.payment.payment import Payment, PaymentProvider, PaymentStatus
from storefront.payment.reconciliation import ReconcilePayment, ReconciliationResult
from storefront.payment.refund import RecordRefund

logger = structlog.get_logger(__name__)


class PaymentService:
    def __init__(self, gateways: GatewayRegistry) -> None:
        self.gateways = gateways

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_payment(self, actor: Actor, payment_id: str) -> Payment:
        payment = self._load(payment_id)
        ensure_owner_or_admin(actor, payment.user_id)
        return payment

    # -------------------------------------------------------------------
    # Intent creation
    # -------------------------------------------------------------------
    def create_intent(
        self,
        actor: Actor,
        order_id: str,
        idempotency_key: str,
        currency: str | None = None,
        provider: str | None = None,
        metadata: dict | None = None,
    ) -> Payment:
        order = self._load_order(order_id)
        ensure_owner_or_admin(actor, order.user_id)

        currency = (currency or order.currency or "USD").upper()
        chosen = PaymentProvider(provider) if provider else select_provider(currency)

        payment_id = current_domain.process(
            InitiatePayment(
                order_id=order_id,
                provider=chosen.value,
                currency=currency,
                idempotency_key=idempotency_key,
            ),
            asynchronous=False,
        )
        payment = self._load(payment_id)
        if payment.provider_payment_id or payment.is_settled:
            # Same key, same order: the earlier attempt stands
            return payment

        gateway = self.gateways.get(payment.provider)
        try:
            intent = gateway.create_intent(
                amount=payment.amount,
                currency=payment.currency,
                idempotency_key=idempotency_key,
                metadata={
                    **(metadata or {}),
                    "order_id": str(order.id),
                    "payment_id": str(payment.id),
                    "user_id": str(order.user_id),
                    "item_count": order.total_items,
                },
            )
        except GatewayError:
            logger.warning(
                "gateway_timeout",
                operation="create_intent",
                payment_id=str(payment.id),
                provider=payment.provider,
            )
            raise

        current_domain.process(
            AttachProviderReference(
                payment_id=str(payment.id),
                provider_payment_id=intent.provider_payment_id,
                client_secret=intent.client_secret,
                redirect_url=intent.redirect_url,
            ),
            asynchronous=False,
        )
        logger.info(
            "payment_intent_created",
            payment_id=str(payment.id),
            order_id=str(order.id),
            provider=payment.provider,
            provider_payment_id=intent.provider_payment_id,
        )
        return self._load(payment_id)

    # -------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------
    def verify(self, actor: Actor, payment_id: str, provider_payment_id: str | None = None) -> ReconciliationResult:
        """Poll the gateway and reconcile. A caller-supplied reference must prove it is this payment's."""
        payment = self.get_payment(actor, payment_id)
        reference = provider_payment_id or payment.provider_payment_id
        if not reference:
            raise InvalidPaymentState("Payment has not been opened with its gateway yet", payment_id=payment_id)

        claimed = current_domain.repository_for(Payment).find_by_provider_reference(payment.provider, reference)
        if claimed is not None and str(claimed.id) != str(payment.id):
            self._reject_foreign(payment, "reference_claimed", claimed_by=str(claimed.id))

        gateway = self.gateways.get(payment.provider)
        try:
            result = gateway.verify(reference)
        except GatewayError:
            logger.warning("gateway_timeout", operation="verify", payment_id=payment_id, provider=payment.provider)
            raise

        self._ensure_result_matches(payment, result)

        if not payment.provider_payment_id:
            # The intent call timed out earlier; adopt the reference now that it is proven ours
            current_domain.process(
                AttachProviderReference(payment_id=payment_id, provider_payment_id=result.provider_payment_id),
                asynchronous=False,
            )

        return current_domain.process(
            ReconcilePayment(
                payment_id=payment_id,
                status=result.status.value,
                transaction_id=result.transaction_id,
                failure_reason=result.failure_reason,
                source="verify",
            ),
            asynchronous=False,
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def refund(self, actor: Actor, payment_id: str, amount: float | None = None, reason: str | None = None) -> dict:
        payment = self.get_payment(actor, payment_id)
        if PaymentStatus(payment.status) != PaymentStatus.COMPLETED:
            raise InvalidPaymentState(
                "Can only refund completed payments",
                payment_id=payment_id,
                status=payment.status,
            )

        amount = round(amount if amount is not None else payment.remaining_refundable, 2)
        if amount <= 0 or amount > payment.remaining_refundable:
            raise InvalidPaymentState(
                f"Refund amount must be between 0 and {payment.remaining_refundable}",
                payment_id=payment_id,
                amount=amount,
            )

        # Distinct per refund so a retried call maps to the same gateway refund
        idempotency_key = f"{payment.idempotency_key}:refund:{len(payment.refunds)}"
        gateway = self.gateways.get(payment.provider)
        result = gateway.refund(
            provider_payment_id=payment.provider_payment_id,
            transaction_id=payment.transaction_id,
            amount=amount,
            currency=payment.currency,
            idempotency_key=idempotency_key,
        )

        fully_refunded = current_domain.process(
            RecordRefund(payment_id=payment_id, refund_id=result.refund_id, amount=result.amount, reason=reason),
            asynchronous=False,
        )
        logger.info(
            "refund_recorded",
            payment_id=payment_id,
            refund_id=result.refund_id,
            amount=result.amount,
            fully_refunded=fully_refunded,
        )
        return {"refund_id": result.refund_id, "amount": result.amount, "fully_refunded": fully_refunded}

    # -------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------
    def handle_webhook(self, provider: str, payload: bytes, signature: str) -> ReconciliationResult | None:
        """Verify, decode and reconcile a gateway callback.

        Rejected signatures raise ``GatewayRejected`` before anything is read
        or written. Events that carry no payment outcome return ``None``.
        """
        gateway = self.gateways.get(provider)
        if not gateway.verify_webhook_signature(payload, signature):
            logger.warning("webhook_signature_rejected", provider=provider)
            raise GatewayRejected("Invalid webhook signature", provider=provider)

        outcome = gateway.handle_webhook(payload)
        if outcome is None:
            logger.info("webhook_ignored", provider=provider)
            return None

        payment = current_domain.repository_for(Payment).find_by_provider_reference(
            provider, outcome.provider_payment_id
        )
        if payment is None:
            raise PaymentNotFound(outcome.provider_payment_id)

        logger.info(
            "webhook_signature_verified",
            provider=provider,
            event_type=outcome.event_type,
            payment_id=str(payment.id),
        )
        return current_domain.process(
            ReconcilePayment(
                payment_id=str(payment.id),
                status=outcome.status.value,
                transaction_id=outcome.transaction_id,
                failure_reason=outcome.failure_reason,
                source="webhook",
            ),
            asynchronous=False,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _ensure_result_matches(self, payment: Payment, result: VerifyResult) -> None:
        """Reject a gateway result that describes some other payment."""
        if payment.provider_payment_id and result.provider_payment_id != payment.provider_payment_id:
            self._reject_foreign(payment, "reference_mismatch", reported=result.provider_payment_id)

        if result.payment_id is None:
            # Nothing else ties an unattached reference to this payment
            if not payment.provider_payment_id:
                self._reject_foreign(payment, "unproven_reference")
        elif result.payment_id != str(payment.id):
            self._reject_foreign(payment, "payment_id_mismatch", reported=result.payment_id)

        if result.amount is not None and abs(result.amount - payment.amount) >= 0.01:
            self._reject_foreign(payment, "amount_mismatch", reported=result.amount, expected=payment.amount)
        if result.currency is not None and result.currency.upper() != payment.currency.upper():
            self._reject_foreign(payment, "currency_mismatch", reported=result.currency, expected=payment.currency)

    def _reject_foreign(self, payment: Payment, reason: str, **details) -> None:
        logger.warning(
            "verification_rejected",
            payment_id=str(payment.id),
            provider=payment.provider,
            reason=reason,
            **details,
        )
        raise GatewayRejected(
            "Verification result belongs to a different payment",
            payment_id=str(payment.id),
            provider=payment.provider,
            reason=reason,
        )

    def _load(self, payment_id: str) -> Payment:
        try:
            return current_domain.repository_for(Payment).get(payment_id)
        except ObjectNotFoundError:
            raise PaymentNotFound(payment_id) from None

    def _load_order(self, order_id: str) -> Order:
        try:
            return current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise OrderNotFound(order_id) from None
