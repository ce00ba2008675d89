"""Integration tests for the Stripe adapter against a stubbed StripeClient."""

import hashlib
import hmac
import json
import time

import pytest
import stripe

from storefront.errors import GatewayError, GatewayRejected
from storefront.gateway.port import Outcome
from storefront.gateway.stripe_adapter import StripeGateway, from_minor_units, map_intent_status, to_minor_units

WEBHOOK_SECRET = "whsec_test_secret"


class _PaymentIntents:
    def __init__(self):
        self.created = []
        self.intents = {}
        self.error = None

    def create(self, params, options):
        if self.error:
            raise self.error
        self.created.append((params, options))
        intent = {
            "id": "pi_123",
            "client_secret": "pi_123_secret_abc",
            "status": "requires_payment_method",
            "amount": params["amount"],
            "currency": params["currency"],
            "metadata": params["metadata"],
        }
        self.intents[intent["id"]] = intent
        return intent

    def retrieve(self, intent_id):
        if self.error:
            raise self.error
        return self.intents[intent_id]


class _Refunds:
    def __init__(self):
        self.created = []
        self.status = "succeeded"

    def create(self, params, options):
        self.created.append((params, options))
        return {"id": "re_123", "status": self.status, "amount": params["amount"]}


class _StubClient:
    def __init__(self):
        self.payment_intents = _PaymentIntents()
        self.refunds = _Refunds()


@pytest.fixture()
def client():
    return _StubClient()


@pytest.fixture()
def gateway(client):
    return StripeGateway(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET, client=client)


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _event(event_type, **intent):
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": {"id": "pi_123", **intent}}}).encode()


class TestAmounts:
    def test_two_decimal_currency(self):
        assert to_minor_units(12.34, "usd") == 1234
        assert from_minor_units(1234, "USD") == 12.34

    def test_zero_decimal_currency(self):
        assert to_minor_units(500, "JPY") == 500
        assert from_minor_units(500, "jpy") == 500.0


class TestStatusMapping:
    @pytest.mark.parametrize(
        "intent, expected",
        [
            ({"status": "succeeded"}, Outcome.COMPLETED),
            ({"status": "processing"}, Outcome.PENDING),
            ({"status": "requires_payment_method"}, Outcome.PENDING),
            ({"status": "requires_action"}, Outcome.PENDING),
            ({"status": "canceled"}, Outcome.FAILED),
            ({"status": "requires_payment_method", "last_payment_error": {"message": "Declined"}}, Outcome.FAILED),
        ],
    )
    def test_intent_status(self, intent, expected):
        assert map_intent_status(intent)[0] == expected


class TestIntents:
    def test_create_sends_idempotency_key_and_minor_units(self, gateway, client):
        result = gateway.create_intent(25.5, "USD", "key-1", {"order_id": "ord-1", "item_count": 2})

        assert result.provider_payment_id == "pi_123"
        assert result.client_secret == "pi_123_secret_abc"
        params, options = client.payment_intents.created[0]
        assert params["amount"] == 2550
        assert params["currency"] == "usd"
        assert params["metadata"] == {"order_id": "ord-1", "item_count": "2"}
        assert options == {"idempotency_key": "key-1"}

    def test_verify_succeeded_intent(self, gateway, client):
        gateway.create_intent(10.0, "USD", "key-1", {"payment_id": "pay-001"})
        client.payment_intents.intents["pi_123"].update(status="succeeded", latest_charge="ch_1")

        result = gateway.verify("pi_123")

        assert result.success
        assert result.transaction_id == "ch_1"

    def test_verify_reports_what_the_intent_was_opened_for(self, gateway, client):
        gateway.create_intent(12.5, "USD", "key-1", {"payment_id": "pay-001"})

        result = gateway.verify("pi_123")

        assert result.amount == 12.5
        assert result.currency == "USD"
        assert result.payment_id == "pay-001"

    def test_connection_errors_are_transient(self, gateway, client):
        client.payment_intents.error = stripe.APIConnectionError("Network down")
        with pytest.raises(GatewayError):
            gateway.create_intent(10.0, "USD", "key-1", {})

    def test_invalid_requests_are_terminal(self, gateway, client):
        client.payment_intents.error = stripe.InvalidRequestError("No such payment_intent", param="id")
        with pytest.raises(GatewayRejected):
            gateway.verify("pi_missing")


class TestRefunds:
    def test_refund_converts_amounts(self, gateway, client):
        result = gateway.refund("pi_123", "ch_1", 12.5, "USD", "key-1:refund:0")

        assert result.refund_id == "re_123"
        assert result.amount == 12.5
        params, options = client.refunds.created[0]
        assert params == {"payment_intent": "pi_123", "amount": 1250}
        assert options == {"idempotency_key": "key-1:refund:0"}

    def test_failed_refund_is_rejected(self, gateway, client):
        client.refunds.status = "failed"
        with pytest.raises(GatewayRejected):
            gateway.refund("pi_123", "ch_1", 12.5, "USD", "key-1:refund:0")


class TestWebhooks:
    def test_valid_signature(self, gateway):
        payload = _event("payment_intent.succeeded")
        assert gateway.verify_webhook_signature(payload, _sign(payload)) is True

    def test_tampered_payload(self, gateway):
        payload = _event("payment_intent.succeeded")
        header = _sign(payload)
        assert gateway.verify_webhook_signature(payload.replace(b"pi_123", b"pi_999"), header) is False

    def test_wrong_secret(self, gateway):
        payload = _event("payment_intent.succeeded")
        assert gateway.verify_webhook_signature(payload, _sign(payload, secret="whsec_other")) is False

    def test_stale_timestamp(self, gateway):
        payload = _event("payment_intent.succeeded")
        header = _sign(payload, timestamp=int(time.time()) - 3600)
        assert gateway.verify_webhook_signature(payload, header) is False

    def test_missing_header(self, gateway):
        assert gateway.verify_webhook_signature(_event("payment_intent.succeeded"), "") is False

    def test_succeeded_event(self, gateway):
        outcome = gateway.handle_webhook(_event("payment_intent.succeeded", latest_charge="ch_1"))
        assert outcome.provider_payment_id == "pi_123"
        assert outcome.status == Outcome.COMPLETED
        assert outcome.transaction_id == "ch_1"

    def test_failed_event_carries_reason(self, gateway):
        outcome = gateway.handle_webhook(
            _event("payment_intent.payment_failed", last_payment_error={"message": "Your card was declined."})
        )
        assert outcome.status == Outcome.FAILED
        assert outcome.failure_reason == "Your card was declined."

    def test_unrelated_event_is_ignored(self, gateway):
        assert gateway.handle_webhook(_event("charge.refunded")) is None

    def test_malformed_event(self, gateway):
        with pytest.raises(GatewayRejected):
            gateway.handle_webhook(b"not json")
