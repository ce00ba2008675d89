"""Payment gateway port (abstract interface).

Every adapter translates its gateway's vocabulary into the canonical outcome
set ``{PENDING, COMPLETED, FAILED}`` at this boundary; nothing past the port
ever sees a gateway-specific status string.

Adapters raise ``GatewayError`` for transient failures (timeouts, 5xx) and
``GatewayRejected`` for terminal ones (declines, malformed events).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class Outcome(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class IntentResult:
    """What the client needs to complete payment with the gateway."""

    provider_payment_id: str
    client_secret: str | None = None
    redirect_url: str | None = None


@dataclass(frozen=True)
class VerifyResult:
    """A polled outcome plus what the gateway says the payment was opened for.

    ``payment_id`` is our own Payment id as recorded on the gateway side
    (intent metadata, or the transaction id we chose). ``None`` fields are
    ones the gateway did not report.
    """

    provider_payment_id: str
    status: Outcome
    transaction_id: str | None = None
    failure_reason: str | None = None
    amount: float | None = None
    currency: str | None = None
    payment_id: str | None = None
    raw: dict = field(default_factory=dict, compare=False)

    @property
    def success(self) -> bool:
        return self.status == Outcome.COMPLETED


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: float


@dataclass(frozen=True)
class WebhookOutcome:
    """A decoded webhook: which provider reference it concerns and what happened."""

    provider_payment_id: str
    status: Outcome
    event_type: str
    transaction_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    #: Provider name stored on Payment records (see ``PaymentProvider``)
    name: str = ""

    @abstractmethod
    def create_intent(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict,
    ) -> IntentResult:
        """Open a payment with the gateway for ``amount`` in ``currency``."""
        ...

    @abstractmethod
    def verify(self, provider_payment_id: str) -> VerifyResult:
        """Poll the gateway for the current state of a payment."""
        ...

    @abstractmethod
    def refund(
        self,
        provider_payment_id: str,
        transaction_id: str | None,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund ``amount`` of a settled payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    @abstractmethod
    def handle_webhook(self, payload: bytes) -> WebhookOutcome | None:
        """Decode a verified webhook. ``None`` for events that carry no payment outcome."""
        ...
