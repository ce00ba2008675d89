"""Payment aggregate: one record per payment attempt.

The record is written in PENDING before the gateway is called, keyed by a
caller-supplied idempotency key, and carries the provider chosen at that
moment so every later verify or refund addresses the same adapter.

State Machine:
    PENDING → COMPLETED | FAILED
    COMPLETED → REFUNDED (once refunded_amount reaches amount)

Partial refunds keep the payment COMPLETED.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, String

from storefront.domain import storefront
from storefront.payment.events import PaymentCompleted, PaymentFailed, PaymentInitiated, PaymentRefunded


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(Enum):
    STRIPE = "STRIPE"
    SSLCOMMERZ = "SSLCOMMERZ"
    FAKE = "FAKE"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal; a retry is a new attempt
    PaymentStatus.REFUNDED: set(),  # Terminal
}

# Outcomes that end the gateway conversation for an attempt
SETTLED_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Payment")
class Refund:
    """A refund confirmed by the gateway against this payment."""

    refund_id = String(required=True, max_length=255)
    amount = Float(required=True, min_value=0.01)
    reason = String(max_length=500)
    refunded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@storefront.aggregate
class Payment:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    provider = String(required=True, choices=PaymentProvider)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    idempotency_key = String(required=True, max_length=255, unique=True)
    provider_payment_id = String(max_length=255)
    transaction_id = String(max_length=255)
    client_secret = String(max_length=500)
    redirect_url = String(max_length=1000)
    refunded_amount = Float(default=0.0)
    refunded_at = DateTime()
    refunds = HasMany(Refund)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def open(cls, order_id, user_id, provider, amount, currency, idempotency_key):
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            user_id=user_id,
            provider=provider,
            amount=amount,
            currency=currency.upper(),
            status=PaymentStatus.PENDING.value,
            idempotency_key=idempotency_key,
            refunded_amount=0.0,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                user_id=str(user_id),
                provider=provider,
                amount=amount,
                currency=payment.currency,
                idempotency_key=idempotency_key,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_settled(self) -> bool:
        return PaymentStatus(self.status) in SETTLED_STATUSES

    @property
    def remaining_refundable(self) -> float:
        return round(self.amount - (self.refunded_amount or 0.0), 2)

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

    # -------------------------------------------------------------------
    # Gateway lifecycle
    # -------------------------------------------------------------------
    def attach_provider_reference(self, provider_payment_id, client_secret=None, redirect_url=None) -> None:
        if self.provider_payment_id and self.provider_payment_id != provider_payment_id:
            raise ValidationError({"provider_payment_id": ["Payment already has a different provider reference"]})

        self.provider_payment_id = provider_payment_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.updated_at = datetime.now(UTC)

    def complete(self, transaction_id=None) -> None:
        self._assert_can_transition(PaymentStatus.COMPLETED)
        now = datetime.now(UTC)
        self.status = PaymentStatus.COMPLETED.value
        self.transaction_id = transaction_id or self.transaction_id
        self.updated_at = now
        self.raise_(
            PaymentCompleted(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                currency=self.currency,
                transaction_id=self.transaction_id,
                completed_at=now,
            )
        )

    def fail(self, reason=None) -> None:
        self._assert_can_transition(PaymentStatus.FAILED)
        now = datetime.now(UTC)
        self.status = PaymentStatus.FAILED.value
        self.failure_reason = reason or "Payment failed"
        self.updated_at = now
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                reason=self.failure_reason,
                failed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def has_refund(self, refund_id) -> bool:
        return any(refund.refund_id == refund_id for refund in self.refunds)

    def record_refund(self, refund_id, amount, reason=None) -> bool:
        """Record a gateway-confirmed refund. Returns True once fully refunded.

        A refund id that is already recorded is a redelivery and changes nothing.
        """
        if self.has_refund(refund_id):
            return PaymentStatus(self.status) == PaymentStatus.REFUNDED
        if PaymentStatus(self.status) != PaymentStatus.COMPLETED:
            raise ValidationError({"status": ["Refunds can only be recorded against completed payments"]})
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be positive"]})
        if amount > self.remaining_refundable:
            raise ValidationError(
                {"amount": [f"Refund of {amount} exceeds the remaining refundable {self.remaining_refundable}"]}
            )

        now = datetime.now(UTC)
        self.add_refunds(Refund(refund_id=refund_id, amount=amount, reason=reason, refunded_at=now))
        self.refunded_amount = round((self.refunded_amount or 0.0) + amount, 2)
        self.refunded_at = now
        self.updated_at = now

        fully_refunded = self.refunded_amount >= self.amount
        if fully_refunded:
            self._assert_can_transition(PaymentStatus.REFUNDED)
            self.status = PaymentStatus.REFUNDED.value

        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                refund_id=refund_id,
                amount=amount,
                refunded_amount=self.refunded_amount,
                fully_refunded=fully_refunded,
                refunded_at=now,
            )
        )
        return fully_refunded
