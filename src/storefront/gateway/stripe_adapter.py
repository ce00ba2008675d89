"""Stripe payment gateway adapter.

Uses the stripe-python ``StripeClient`` with a bounded HTTP timeout and the
SDK's own network retries. Intents and refunds carry our idempotency key so a
retried call never creates a second charge or refund on Stripe's side.

Status mapping (PaymentIntent.status → canonical):
    succeeded                                  → COMPLETED
    canceled                                   → FAILED
    requires_payment_method after an attempt   → FAILED
    anything else (processing, requires_*)     → PENDING
"""

import json

import stripe
import structlog

from storefront.errors import GatewayError, GatewayRejected
from storefront.gateway.port import IntentResult, Outcome, PaymentGateway, RefundResult, VerifyResult, WebhookOutcome

logger = structlog.get_logger(__name__)

# Currencies Stripe expects in whole units rather than cents
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA", "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF"}
)

SIGNATURE_TOLERANCE_SECONDS = 300


def to_minor_units(amount: float, currency: str) -> int:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))


def from_minor_units(amount: int, currency: str) -> float:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return round(amount / 100, 2)


def map_intent_status(intent) -> tuple[Outcome, str | None]:
    status = intent["status"]
    if status == "succeeded":
        return Outcome.COMPLETED, None
    if status == "canceled":
        return Outcome.FAILED, intent.get("cancellation_reason") or "canceled"

    last_error = intent.get("last_payment_error")
    if status == "requires_payment_method" and last_error:
        return Outcome.FAILED, last_error.get("message") or "Payment method declined"
    return Outcome.PENDING, None


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    name = "STRIPE"

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout: float = 10.0,
        max_network_retries: int = 2,
        client: stripe.StripeClient | None = None,
    ) -> None:
        self.webhook_secret = webhook_secret
        self.client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=max_network_retries,
        )

    # -------------------------------------------------------------------
    # Error translation
    # -------------------------------------------------------------------
    def _translate(self, error: stripe.StripeError, operation: str) -> Exception:
        transient = isinstance(error, stripe.APIConnectionError | stripe.RateLimitError | stripe.APIError)
        logger.error(
            "stripe_api_error",
            operation=operation,
            error_type=type(error).__name__,
            error_code=getattr(error, "code", None),
            transient=transient,
        )
        if transient:
            return GatewayError(str(error), provider=self.name, operation=operation)
        return GatewayRejected(str(error), provider=self.name, operation=operation)

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def create_intent(self, amount, currency, idempotency_key, metadata) -> IntentResult:
        try:
            intent = self.client.payment_intents.create(
                params={
                    "amount": to_minor_units(amount, currency),
                    "currency": currency.lower(),
                    "metadata": {k: str(v) for k, v in metadata.items()},
                    "automatic_payment_methods": {"enabled": True},
                },
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise self._translate(e, "create_intent") from e

        logger.info("stripe_intent_created", payment_intent_id=intent["id"], status=intent["status"])
        return IntentResult(provider_payment_id=intent["id"], client_secret=intent["client_secret"])

    def verify(self, provider_payment_id) -> VerifyResult:
        try:
            intent = self.client.payment_intents.retrieve(provider_payment_id)
        except stripe.StripeError as e:
            raise self._translate(e, "verify") from e

        status, reason = map_intent_status(intent)
        currency = intent.get("currency")
        amount = intent.get("amount")
        return VerifyResult(
            provider_payment_id=intent["id"],
            status=status,
            transaction_id=intent.get("latest_charge"),
            failure_reason=reason,
            amount=from_minor_units(amount, currency) if amount is not None and currency else None,
            currency=currency.upper() if currency else None,
            payment_id=(intent.get("metadata") or {}).get("payment_id"),
        )

    def refund(self, provider_payment_id, transaction_id, amount, currency, idempotency_key) -> RefundResult:
        try:
            refund = self.client.refunds.create(
                params={
                    "payment_intent": provider_payment_id,
                    "amount": to_minor_units(amount, currency),
                },
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as e:
            raise self._translate(e, "refund") from e

        if refund["status"] in ("failed", "canceled"):
            raise GatewayRejected(
                f"Stripe refund {refund['id']} {refund['status']}",
                provider=self.name,
                operation="refund",
            )
        return RefundResult(refund_id=refund["id"], amount=from_minor_units(refund["amount"], currency))

    def verify_webhook_signature(self, payload, signature) -> bool:
        if not signature or not self.webhook_secret:
            return False
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8") if isinstance(payload, bytes) else payload,
                signature,
                self.webhook_secret,
                tolerance=SIGNATURE_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError:
            return False
        return True

    def handle_webhook(self, payload) -> WebhookOutcome | None:
        try:
            event = json.loads(payload)
            event_type = event["type"]
            intent = event["data"]["object"]
        except (ValueError, KeyError, TypeError):
            raise GatewayRejected("Malformed Stripe event", provider=self.name) from None

        if not event_type.startswith("payment_intent."):
            return None

        if event_type == "payment_intent.succeeded":
            status, reason = Outcome.COMPLETED, None
        elif event_type == "payment_intent.payment_failed":
            error = intent.get("last_payment_error") or {}
            status, reason = Outcome.FAILED, error.get("message") or "Payment failed"
        elif event_type == "payment_intent.canceled":
            status, reason = Outcome.FAILED, intent.get("cancellation_reason") or "canceled"
        elif event_type == "payment_intent.processing":
            status, reason = Outcome.PENDING, None
        else:
            return None

        return WebhookOutcome(
            provider_payment_id=intent["id"],
            status=status,
            event_type=event_type,
            transaction_id=intent.get("latest_charge"),
            failure_reason=reason,
        )
