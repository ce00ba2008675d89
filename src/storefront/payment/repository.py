"""Payment lookups by idempotency key, provider reference and order."""

from storefront.domain import storefront
from storefront.payment.payment import Payment


@storefront.repository(part_of=Payment)
class PaymentRepository:
    def find_by_idempotency_key(self, idempotency_key: str) -> Payment | None:
        return self._dao.query.filter(idempotency_key=idempotency_key).all().first

    def find_by_provider_reference(self, provider: str, provider_payment_id: str) -> Payment | None:
        """Webhook lookup: trust the gateway's own reference, never ids echoed in the body."""
        return self._dao.query.filter(provider=provider, provider_payment_id=provider_payment_id).all().first

    def for_order(self, order_id: str) -> list[Payment]:
        return self._dao.query.filter(order_id=str(order_id)).all().items
