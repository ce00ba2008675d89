"""Tests for the Payment aggregate lifecycle and refund accumulation."""

import pytest
from protean.exceptions import ValidationError

from storefront.payment.events import PaymentCompleted, PaymentFailed, PaymentRefunded
from storefront.payment.payment import Payment, PaymentProvider, PaymentStatus


def _make_payment(amount=50.0):
    payment = Payment.open(
        order_id="ord-001",
        user_id="user-001",
        provider=PaymentProvider.STRIPE.value,
        amount=amount,
        currency="usd",
        idempotency_key="idem-001",
    )
    payment._events.clear()
    return payment


def _make_completed_payment(amount=50.0):
    payment = _make_payment(amount)
    payment.complete(transaction_id="ch_123")
    payment._events.clear()
    return payment


class TestOpenPayment:
    def test_opens_pending_with_provider(self):
        payment = _make_payment()
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.provider == "STRIPE"
        assert payment.currency == "USD"
        assert payment.refunded_amount == 0.0

    def test_provider_must_be_known(self):
        with pytest.raises(ValidationError):
            Payment.open(
                order_id="ord-001",
                user_id="user-001",
                provider="PAYPAL",
                amount=10.0,
                currency="USD",
                idempotency_key="idem-002",
            )


class TestSettlement:
    def test_complete_sets_transaction(self):
        payment = _make_payment()
        payment.complete(transaction_id="ch_123")
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.transaction_id == "ch_123"
        assert payment.is_settled
        assert isinstance(payment._events[-1], PaymentCompleted)

    def test_fail_records_reason(self):
        payment = _make_payment()
        payment.fail(reason="Insufficient funds")
        assert payment.status == PaymentStatus.FAILED.value
        assert payment.failure_reason == "Insufficient funds"
        assert isinstance(payment._events[-1], PaymentFailed)

    def test_failed_payment_cannot_complete(self):
        payment = _make_payment()
        payment.fail()
        with pytest.raises(ValidationError):
            payment.complete()

    def test_completed_payment_cannot_fail(self):
        payment = _make_completed_payment()
        with pytest.raises(ValidationError):
            payment.fail()

    def test_provider_reference_is_write_once(self):
        payment = _make_payment()
        payment.attach_provider_reference("pi_1", client_secret="pi_1_secret")
        payment.attach_provider_reference("pi_1", client_secret="pi_1_secret")
        with pytest.raises(ValidationError):
            payment.attach_provider_reference("pi_2")


class TestRefunds:
    def test_partial_refunds_accumulate_then_complete(self):
        payment = _make_completed_payment(50.0)

        assert payment.record_refund("re_1", 20.0) is False
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.refunded_amount == 20.0

        assert payment.record_refund("re_2", 20.0) is False
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.refunded_amount == 40.0

        assert payment.record_refund("re_3", 10.0) is True
        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.refunded_amount == 50.0
        assert len(payment.refunds) == 3

    def test_refund_raises_event(self):
        payment = _make_completed_payment()
        payment.record_refund("re_1", 50.0, reason="Damaged")
        event = payment._events[-1]
        assert isinstance(event, PaymentRefunded)
        assert event.fully_refunded is True

    def test_refund_over_remaining_is_rejected(self):
        payment = _make_completed_payment(50.0)
        payment.record_refund("re_1", 30.0)
        with pytest.raises(ValidationError):
            payment.record_refund("re_2", 25.0)
        assert payment.remaining_refundable == 20.0

    def test_pending_payment_cannot_be_refunded(self):
        payment = _make_payment()
        with pytest.raises(ValidationError):
            payment.record_refund("re_1", 10.0)

    def test_fully_refunded_payment_rejects_more(self):
        payment = _make_completed_payment(50.0)
        payment.record_refund("re_1", 50.0)
        with pytest.raises(ValidationError):
            payment.record_refund("re_2", 1.0)

    def test_redelivered_refund_id_is_ignored(self):
        payment = _make_completed_payment(50.0)
        payment.record_refund("re_1", 20.0)
        payment._events.clear()

        assert payment.record_refund("re_1", 20.0) is False

        assert payment.refunded_amount == 20.0
        assert len(payment.refunds) == 1
        assert payment._events == []
