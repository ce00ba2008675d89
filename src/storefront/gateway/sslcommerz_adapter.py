"""SSLCommerz payment gateway adapter (Bangladesh, BDT).

The hosted-checkout flow:

1. ``create_intent`` opens a session (``gwprocess/v4/api.php``) under our own
   ``tran_id`` and returns the ``GatewayPageURL`` the customer is redirected to.
2. SSLCommerz posts an IPN to our webhook. The IPN is signed: ``verify_sign``
   is the MD5 of the fields listed in ``verify_key`` plus the MD5 of the store
   password, sorted by key and joined as ``k=v&k=v``.
3. ``verify`` asks the validation API about a ``val_id`` before trusting it.

Our ``tran_id`` is the provider reference stored on the Payment, so IPNs are
matched by it; ``bank_tran_id`` is the settled transaction used for refunds.
"""

import hashlib
import hmac
from urllib.parse import parse_qsl

import requests
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.errors import GatewayError, GatewayRejected
from storefront.gateway.port import IntentResult, Outcome, PaymentGateway, RefundResult, VerifyResult, WebhookOutcome

logger = structlog.get_logger(__name__)

SANDBOX_URL = "https://sandbox.sslcommerz.com"
LIVE_URL = "https://securepay.sslcommerz.com"

_STATUS_MAP = {
    "VALID": Outcome.COMPLETED,
    "VALIDATED": Outcome.COMPLETED,
    "FAILED": Outcome.FAILED,
    "CANCELLED": Outcome.FAILED,
    "EXPIRED": Outcome.FAILED,
    "UNATTEMPTED": Outcome.FAILED,
    "INVALID_TRANSACTION": Outcome.FAILED,
    "PENDING": Outcome.PENDING,
}


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    )


def sign_fields(fields: dict, store_password: str) -> str:
    """Compute the ``verify_sign`` SSLCommerz attaches to an IPN over ``fields``."""
    signed = dict(fields)
    signed["store_passwd"] = hashlib.md5(store_password.encode("utf-8")).hexdigest()
    message = "&".join(f"{key}={signed[key]}" for key in sorted(signed))
    return hashlib.md5(message.encode("utf-8")).hexdigest()


class SSLCommerzGateway(PaymentGateway):
    """SSLCommerz hosted checkout adapter."""

    name = "SSLCOMMERZ"

    def __init__(
        self,
        store_id: str,
        store_password: str,
        is_live: bool = False,
        frontend_url: str = "http://localhost:5173",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.store_id = store_id
        self.store_password = store_password
        self.base_url = LIVE_URL if is_live else SANDBOX_URL
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    # -------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------
    @http_retry()
    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        return self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)

    def _call(self, method: str, path: str, operation: str, **kwargs) -> dict:
        try:
            response = self._send(method, path, **kwargs)
        except requests.RequestException as e:
            logger.warning("gateway_timeout", provider=self.name, operation=operation, error=type(e).__name__)
            raise GatewayError(f"SSLCommerz unreachable: {e}", provider=self.name, operation=operation) from e

        if response.status_code >= 500:
            raise GatewayError(
                f"SSLCommerz returned {response.status_code}",
                provider=self.name,
                operation=operation,
            )
        try:
            return response.json()
        except ValueError:
            raise GatewayError("SSLCommerz returned a non-JSON body", provider=self.name, operation=operation) from None

    def _credentials(self) -> dict:
        return {"store_id": self.store_id, "store_passwd": self.store_password}

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def create_intent(self, amount, currency, idempotency_key, metadata) -> IntentResult:
        tran_id = str(metadata.get("payment_id") or idempotency_key)
        data = {
            **self._credentials(),
            "total_amount": f"{amount:.2f}",
            "currency": currency.upper(),
            "tran_id": tran_id,
            "success_url": f"{self.frontend_url}/payment/success",
            "fail_url": f"{self.frontend_url}/payment/failed",
            "cancel_url": f"{self.frontend_url}/payment/cancelled",
            "ipn_url": metadata.get("ipn_url") or f"{self.frontend_url}/api/payments/webhooks/sslcommerz",
            "cus_name": metadata.get("customer_name") or "Customer",
            "cus_email": metadata.get("customer_email") or "customer@example.com",
            "cus_phone": metadata.get("customer_phone") or "01700000000",
            "cus_add1": metadata.get("address_line1") or "Dhaka",
            "cus_city": metadata.get("city") or "Dhaka",
            "cus_country": metadata.get("country") or "Bangladesh",
            "product_name": f"Order {metadata.get('order_id', '')}".strip(),
            "product_category": "eCommerce",
            "product_profile": "general",
            "shipping_method": "NO",
            "num_of_item": metadata.get("item_count") or 1,
        }
        body = self._call("POST", "/gwprocess/v4/api.php", "create_intent", data=data)

        if body.get("status") != "SUCCESS":
            raise GatewayRejected(
                body.get("failedreason") or "Payment initialization failed",
                provider=self.name,
                operation="create_intent",
            )

        logger.info("sslcommerz_session_created", tran_id=tran_id, session_key=body.get("sessionkey"))
        return IntentResult(provider_payment_id=tran_id, redirect_url=body.get("GatewayPageURL"))

    def verify(self, provider_payment_id) -> VerifyResult:
        """Validate a ``val_id`` received on the success redirect or in an IPN."""
        body = self._call(
            "GET",
            "/validator/api/validationserverAPI.php",
            "verify",
            params={"val_id": provider_payment_id, **self._credentials(), "format": "json"},
        )
        raw_status = (body.get("status") or "").upper()
        status = _STATUS_MAP.get(raw_status, Outcome.PENDING)
        # currency_amount/currency_type are what the session was opened with
        amount = body.get("currency_amount") or body.get("amount")
        currency = body.get("currency_type") or body.get("currency")
        return VerifyResult(
            provider_payment_id=body.get("tran_id") or "",
            status=status,
            transaction_id=body.get("bank_tran_id"),
            failure_reason=(body.get("error") or f"SSLCommerz status {raw_status}") if status == Outcome.FAILED else None,
            amount=float(amount) if amount not in (None, "") else None,
            currency=currency.upper() if currency else None,
            payment_id=body.get("tran_id"),
            raw=body,
        )

    def refund(self, provider_payment_id, transaction_id, amount, currency, idempotency_key) -> RefundResult:
        if not transaction_id:
            raise GatewayRejected("Payment has no bank transaction to refund", provider=self.name, operation="refund")

        body = self._send_refund(transaction_id, amount, idempotency_key)
        if (body.get("status") or "").lower() != "success":
            raise GatewayRejected(
                body.get("errorReason") or "Refund failed",
                provider=self.name,
                operation="refund",
            )
        return RefundResult(refund_id=body.get("refund_ref_id") or idempotency_key, amount=amount)

    def _send_refund(self, bank_tran_id: str, amount: float, refe_id: str) -> dict:
        return self._call(
            "GET",
            "/validator/api/merchantTransIDvalidationAPI.php",
            "refund",
            params={
                "bank_tran_id": bank_tran_id,
                "refund_amount": f"{amount:.2f}",
                "refund_remarks": "Customer refund request",
                "refe_id": refe_id,
                **self._credentials(),
                "format": "json",
            },
        )

    def verify_webhook_signature(self, payload, signature) -> bool:  # noqa: ARG002
        """IPNs carry their signature in the body, so ``signature`` is unused."""
        fields = self._parse(payload)
        verify_sign = fields.get("verify_sign")
        verify_key = fields.get("verify_key")
        if not verify_sign or not verify_key:
            return False

        keys = [k for k in verify_key.split(",") if k]
        if any(k not in fields for k in keys):
            return False

        expected = sign_fields({k: fields[k] for k in keys}, self.store_password)
        return hmac.compare_digest(expected, verify_sign)

    def handle_webhook(self, payload) -> WebhookOutcome | None:
        fields = self._parse(payload)
        tran_id = fields.get("tran_id")
        raw_status = (fields.get("status") or "").upper()
        if not tran_id or not raw_status:
            raise GatewayRejected("IPN without tran_id or status", provider=self.name)

        status = _STATUS_MAP.get(raw_status)
        if status is None:
            return None

        return WebhookOutcome(
            provider_payment_id=tran_id,
            status=status,
            event_type=f"sslcommerz.{raw_status.lower()}",
            transaction_id=fields.get("bank_tran_id"),
            failure_reason=(fields.get("error") or raw_status.lower()) if status == Outcome.FAILED else None,
        )

    @staticmethod
    def _parse(payload) -> dict:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        return dict(parse_qsl(text, keep_blank_values=True))
