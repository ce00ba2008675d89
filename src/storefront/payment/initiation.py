"""Payment initiation: commands and handler.

``InitiatePayment`` writes the PENDING record (and moves the order to
PAYMENT_PENDING) before any gateway call. ``AttachProviderReference`` stores
what the gateway returned once the intent exists.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.errors import DuplicateAttempt, InvalidPaymentState
from storefront.order.order import Order
from storefront.payment.payment import Payment


@storefront.command(part_of="Payment")
class InitiatePayment:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=20)
    currency = String(required=True, max_length=3)
    idempotency_key = String(required=True, max_length=255)


@storefront.command(part_of="Payment")
class AttachProviderReference:
    payment_id = Identifier(required=True)
    provider_payment_id = String(required=True, max_length=255)
    client_secret = String(max_length=500)
    redirect_url = String(max_length=1000)


@storefront.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        repo = current_domain.repository_for(Payment)

        existing = repo.find_by_idempotency_key(command.idempotency_key)
        if existing is not None:
            if str(existing.order_id) != str(command.order_id):
                raise DuplicateAttempt(command.idempotency_key)
            return str(existing.id)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        if order.is_paid:
            raise InvalidPaymentState("Order already paid", order_id=str(order.id))

        payment = Payment.open(
            order_id=str(order.id),
            user_id=str(order.user_id),
            provider=command.provider,
            amount=order.total_amount,
            currency=command.currency,
            idempotency_key=command.idempotency_key,
        )
        order.begin_payment(payment.id)

        repo.add(payment)
        order_repo.add(order)
        return str(payment.id)

    @handle(AttachProviderReference)
    def attach_provider_reference(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)
        payment.attach_provider_reference(
            provider_payment_id=command.provider_payment_id,
            client_secret=command.client_secret,
            redirect_url=command.redirect_url,
        )
        repo.add(payment)
