"""Configurable fake payment gateway for development and testing.

Simulates a gateway without any external calls. It can be told to approve or
decline, or to behave as if the gateway were unreachable, which makes it useful
for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials

Webhooks are JSON documents signed with the literal ``test-signature``.
"""

import json
from uuid import uuid4

from storefront.errors import GatewayError, GatewayRejected
from storefront.gateway.port import IntentResult, Outcome, PaymentGateway, RefundResult, VerifyResult, WebhookOutcome

_WEBHOOK_STATUSES = {
    "succeeded": Outcome.COMPLETED,
    "failed": Outcome.FAILED,
    "processing": Outcome.PENDING,
}


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "FAKE"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.unavailable: bool = False
        self.calls: list[dict] = []
        self.intents: dict[str, dict] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        unavailable: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unavailable = unavailable

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if self.unavailable:
            raise GatewayError("Fake gateway timed out", provider=self.name, operation=method)

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def create_intent(self, amount, currency, idempotency_key, metadata) -> IntentResult:
        self._record(
            "create_intent",
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
            metadata=dict(metadata),
        )
        intent_id = f"fake_pi_{uuid4().hex[:12]}"
        self.intents[intent_id] = {
            "amount": amount,
            "currency": currency.upper(),
            "payment_id": metadata.get("payment_id"),
        }
        return IntentResult(provider_payment_id=intent_id, client_secret=f"{intent_id}_secret")

    def verify(self, provider_payment_id) -> VerifyResult:
        self._record("verify", provider_payment_id=provider_payment_id)
        intent = self.intents.get(provider_payment_id)
        if intent is None:
            raise GatewayRejected(f"No such intent {provider_payment_id}", provider=self.name, operation="verify")

        if self.should_succeed:
            return VerifyResult(
                provider_payment_id=provider_payment_id,
                status=Outcome.COMPLETED,
                transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                **intent,
            )
        return VerifyResult(
            provider_payment_id=provider_payment_id,
            status=Outcome.FAILED,
            failure_reason=self.failure_reason,
            **intent,
        )

    def refund(self, provider_payment_id, transaction_id, amount, currency, idempotency_key) -> RefundResult:
        self._record(
            "refund",
            provider_payment_id=provider_payment_id,
            transaction_id=transaction_id,
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        if not self.should_succeed:
            raise GatewayRejected(self.failure_reason, provider=self.name)
        return RefundResult(refund_id=f"fake_ref_{uuid4().hex[:12]}", amount=amount)

    def verify_webhook_signature(self, payload, signature) -> bool:  # noqa: ARG002
        return signature == "test-signature"

    def handle_webhook(self, payload) -> WebhookOutcome | None:
        try:
            event = json.loads(payload)
        except ValueError:
            raise GatewayRejected("Malformed webhook payload", provider=self.name) from None

        status = _WEBHOOK_STATUSES.get(event.get("status"))
        if status is None or not event.get("provider_payment_id"):
            return None

        return WebhookOutcome(
            provider_payment_id=event["provider_payment_id"],
            status=status,
            event_type=f"fake.{event['status']}",
            transaction_id=event.get("transaction_id"),
            failure_reason=event.get("failure_reason"),
        )
