"""Integration tests for the SSLCommerz adapter against a stubbed requests session."""

from urllib.parse import urlencode

import pytest
import requests

from storefront.errors import GatewayError, GatewayRejected
from storefront.gateway.port import Outcome
from storefront.gateway.sslcommerz_adapter import SANDBOX_URL, SSLCommerzGateway, sign_fields

STORE_PASSWORD = "store-secret"


class _Response:
    def __init__(self, body=None, status_code=200):
        self._body = body
        self.status_code = status_code

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class _Session:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _gateway(session):
    return SSLCommerzGateway(
        store_id="teststore",
        store_password=STORE_PASSWORD,
        frontend_url="https://shop.example.com/",
        timeout=5.0,
        session=session,
    )


def _ipn(**fields):
    fields.setdefault("tran_id", "pay-001")
    fields.setdefault("val_id", "val-001")
    fields.setdefault("amount", "100.00")
    fields.setdefault("bank_tran_id", "bank-001")
    signed_keys = sorted(fields)
    fields["verify_key"] = ",".join(signed_keys)
    fields["verify_sign"] = sign_fields({k: fields[k] for k in signed_keys}, STORE_PASSWORD)
    return urlencode(fields).encode()


class TestCreateIntent:
    def test_opens_session_under_payment_id(self):
        session = _Session(
            _Response({"status": "SUCCESS", "GatewayPageURL": "https://sandbox/pay/abc", "sessionkey": "abc"})
        )

        result = _gateway(session).create_intent(
            1500.0, "bdt", "key-1", {"payment_id": "pay-001", "order_id": "ord-001", "item_count": 3}
        )

        assert result.provider_payment_id == "pay-001"
        assert result.redirect_url == "https://sandbox/pay/abc"
        sent = session.requests[0]
        assert sent["url"] == f"{SANDBOX_URL}/gwprocess/v4/api.php"
        assert sent["timeout"] == 5.0
        assert sent["data"]["tran_id"] == "pay-001"
        assert sent["data"]["total_amount"] == "1500.00"
        assert sent["data"]["currency"] == "BDT"
        assert sent["data"]["num_of_item"] == 3
        assert sent["data"]["success_url"] == "https://shop.example.com/payment/success"

    def test_declined_session(self):
        session = _Session(_Response({"status": "FAILED", "failedreason": "Store inactive"}))
        with pytest.raises(GatewayRejected, match="Store inactive"):
            _gateway(session).create_intent(10.0, "BDT", "key-1", {"payment_id": "pay-001"})

    def test_connection_errors_are_retried_then_transient(self):
        session = _Session(*[requests.ConnectionError("refused")] * 3)
        with pytest.raises(GatewayError):
            _gateway(session).create_intent(10.0, "BDT", "key-1", {"payment_id": "pay-001"})
        assert len(session.requests) == 3

    def test_recovers_after_a_timeout(self):
        session = _Session(
            requests.Timeout("slow"),
            _Response({"status": "SUCCESS", "GatewayPageURL": "https://sandbox/pay/abc"}),
        )
        result = _gateway(session).create_intent(10.0, "BDT", "key-1", {"payment_id": "pay-001"})
        assert result.provider_payment_id == "pay-001"

    def test_server_errors_are_transient(self):
        session = _Session(_Response(status_code=503))
        with pytest.raises(GatewayError):
            _gateway(session).create_intent(10.0, "BDT", "key-1", {"payment_id": "pay-001"})


class TestVerify:
    @pytest.mark.parametrize(
        "status, expected",
        [
            ("VALID", Outcome.COMPLETED),
            ("VALIDATED", Outcome.COMPLETED),
            ("FAILED", Outcome.FAILED),
            ("CANCELLED", Outcome.FAILED),
            ("PENDING", Outcome.PENDING),
        ],
    )
    def test_maps_validation_status(self, status, expected):
        session = _Session(_Response({"status": status, "tran_id": "pay-001", "bank_tran_id": "bank-001"}))

        result = _gateway(session).verify("val-001")

        assert result.status == expected
        assert result.provider_payment_id == "pay-001"
        assert session.requests[0]["params"]["val_id"] == "val-001"

    def test_completed_carries_bank_transaction(self):
        session = _Session(_Response({"status": "VALID", "tran_id": "pay-001", "bank_tran_id": "bank-001"}))
        assert _gateway(session).verify("val-001").transaction_id == "bank-001"

    def test_reports_session_amount_and_transaction_id(self):
        session = _Session(
            _Response(
                {
                    "status": "VALID",
                    "tran_id": "pay-001",
                    "bank_tran_id": "bank-001",
                    "amount": "2.35",
                    "currency": "USD",
                    "currency_amount": "250.00",
                    "currency_type": "BDT",
                }
            )
        )

        result = _gateway(session).verify("val-001")

        assert result.amount == 250.0
        assert result.currency == "BDT"
        assert result.payment_id == "pay-001"


class TestRefund:
    def test_refund_uses_bank_transaction(self):
        session = _Session(_Response({"status": "success", "refund_ref_id": "ref-001"}))

        result = _gateway(session).refund("pay-001", "bank-001", 250.0, "BDT", "key-1:refund:0")

        assert result.refund_id == "ref-001"
        params = session.requests[0]["params"]
        assert params["bank_tran_id"] == "bank-001"
        assert params["refund_amount"] == "250.00"
        assert params["refe_id"] == "key-1:refund:0"

    def test_refund_without_transaction(self):
        with pytest.raises(GatewayRejected):
            _gateway(_Session()).refund("pay-001", None, 10.0, "BDT", "key-1:refund:0")

    def test_refund_refused(self):
        session = _Session(_Response({"status": "failed", "errorReason": "Already refunded"}))
        with pytest.raises(GatewayRejected, match="Already refunded"):
            _gateway(session).refund("pay-001", "bank-001", 10.0, "BDT", "key-1:refund:0")


class TestIpn:
    def test_signed_ipn_verifies(self):
        assert _gateway(_Session()).verify_webhook_signature(_ipn(status="VALID"), "") is True

    def test_tampered_ipn_fails(self):
        payload = _ipn(status="VALID").replace(b"amount=100.00", b"amount=1.00")
        assert _gateway(_Session()).verify_webhook_signature(payload, "") is False

    def test_unsigned_ipn_fails(self):
        payload = urlencode({"tran_id": "pay-001", "status": "VALID"}).encode()
        assert _gateway(_Session()).verify_webhook_signature(payload, "") is False

    def test_valid_ipn_outcome(self):
        outcome = _gateway(_Session()).handle_webhook(_ipn(status="VALID"))
        assert outcome.provider_payment_id == "pay-001"
        assert outcome.status == Outcome.COMPLETED
        assert outcome.transaction_id == "bank-001"

    def test_failed_ipn_outcome(self):
        outcome = _gateway(_Session()).handle_webhook(_ipn(status="FAILED", error="Insufficient balance"))
        assert outcome.status == Outcome.FAILED
        assert outcome.failure_reason == "Insufficient balance"

    def test_ipn_without_tran_id(self):
        with pytest.raises(GatewayRejected):
            _gateway(_Session()).handle_webhook(urlencode({"status": "VALID"}).encode())
