"""Tests for the Order status state machine."""

import pytest
from protean.exceptions import ValidationError

from storefront.errors import InvalidStatusTransition
from storefront.order.events import OrderCancellationReverted, OrderCancelled, OrderConfirmed, OrderPlaced
from storefront.order.order import Order, OrderPaymentStatus, OrderStatus, ShippingAddress


def _address():
    return ShippingAddress(
        full_name="Jane Doe",
        phone="+15550100",
        address_line1="1 Main St",
        city="Springfield",
        postal_code="12345",
        country="US",
    )


def _make_order():
    order = Order.place(
        user_id="user-001",
        lines=[
            {"variant_id": "var-001", "sku": "MUG-WHT", "quantity": 2, "supplier_id": "sup-1", "price_at_purchase": 12.0},
            {"variant_id": "var-002", "sku": "TEE-BLK", "quantity": 1, "supplier_id": "sup-1", "price_at_purchase": 20.5},
        ],
        shipping_address=_address(),
    )
    order._events.clear()
    return order


def _make_paid_order():
    order = _make_order()
    order.begin_payment("pay-001")
    order.record_payment_settled("pay-001")
    order._events.clear()
    return order


class TestPlaceOrder:
    def test_total_is_locked_from_line_prices(self):
        order = _make_order()
        assert order.total_amount == 44.5
        assert order.total_items == 3

    def test_starts_created_and_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.CREATED.value
        assert order.payment_status == OrderPaymentStatus.PENDING.value

    def test_raises_order_placed(self):
        order = Order.place(
            user_id="user-001",
            lines=[{"variant_id": "var-001", "quantity": 1, "price_at_purchase": 5.0}],
            shipping_address=_address(),
        )
        assert isinstance(order._events[-1], OrderPlaced)
        assert order._events[-1].item_count == 1

    def test_requires_at_least_one_line(self):
        with pytest.raises(ValidationError):
            Order.place(user_id="user-001", lines=[], shipping_address=_address())

    def test_notes_are_capped(self):
        with pytest.raises(ValidationError):
            Order.place(
                user_id="user-001",
                lines=[{"variant_id": "var-001", "quantity": 1, "price_at_purchase": 5.0}],
                shipping_address=_address(),
                notes="x" * 501,
            )


class TestPaymentTransitions:
    def test_begin_payment_moves_to_payment_pending(self):
        order = _make_order()
        order.begin_payment("pay-001")
        assert order.status == OrderStatus.PAYMENT_PENDING.value

    def test_settlement_confirms_order(self):
        order = _make_order()
        order.begin_payment("pay-001")
        order.record_payment_settled("pay-001")
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.payment_status == OrderPaymentStatus.PAID.value
        assert str(order.payment_id) == "pay-001"
        assert isinstance(order._events[-1], OrderConfirmed)

    def test_settlement_may_skip_payment_pending(self):
        order = _make_order()
        order.record_payment_settled("pay-001")
        assert order.status == OrderStatus.CONFIRMED.value

    def test_failure_keeps_status(self):
        order = _make_order()
        order.begin_payment("pay-001")
        order.record_payment_failed("pay-001", reason="Card declined")
        assert order.status == OrderStatus.PAYMENT_PENDING.value
        assert order.payment_status == OrderPaymentStatus.FAILED.value

    def test_new_attempt_after_failure_resets_payment_status(self):
        order = _make_order()
        order.begin_payment("pay-001")
        order.record_payment_failed("pay-001")
        order.begin_payment("pay-002")
        assert order.payment_status == OrderPaymentStatus.PENDING.value

    def test_cannot_begin_payment_on_paid_order(self):
        order = _make_paid_order()
        with pytest.raises(ValidationError):
            order.begin_payment("pay-002")

    def test_paid_order_cannot_be_marked_failed(self):
        order = _make_paid_order()
        with pytest.raises(ValidationError):
            order.record_payment_failed("pay-001")

    def test_refund_leaves_status_alone(self):
        order = _make_paid_order()
        order.record_refunded("pay-001", 44.5)
        assert order.payment_status == OrderPaymentStatus.REFUNDED.value
        assert order.status == OrderStatus.CONFIRMED.value

    def test_unpaid_order_cannot_be_refunded(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.record_refunded("pay-001", 10.0)


class TestFulfilmentTransitions:
    def test_forward_path(self):
        order = _make_paid_order()
        order.mark_processing()
        order.ship(tracking_number="TRK-1")
        order.deliver()
        assert order.status == OrderStatus.DELIVERED.value
        assert order.tracking_number == "TRK-1"

    def test_shipped_cannot_go_back_to_processing(self):
        order = _make_paid_order()
        order.mark_processing()
        order.ship()
        with pytest.raises(InvalidStatusTransition):
            order.mark_processing()

    def test_cannot_ship_unconfirmed_order(self):
        order = _make_order()
        with pytest.raises(InvalidStatusTransition):
            order.ship()

    def test_cannot_process_created_order(self):
        order = _make_order()
        with pytest.raises(InvalidStatusTransition) as exc:
            order.mark_processing()
        assert exc.value.current == OrderStatus.CREATED.value
        assert exc.value.target == OrderStatus.PROCESSING.value

    def test_transition_error_reads_as_validation_error(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.deliver()
        assert "status" in exc.value.messages

    def test_tracking_number_can_be_attached_before_shipping(self):
        order = _make_paid_order()
        order.attach_tracking_number("TRK-9")
        assert order.tracking_number == "TRK-9"


class TestCancellation:
    @pytest.mark.parametrize("steps", [[], ["begin"], ["begin", "settle"], ["begin", "settle", "process"]])
    def test_cancellable_states(self, steps):
        order = _make_order()
        if "begin" in steps:
            order.begin_payment("pay-001")
        if "settle" in steps:
            order.record_payment_settled("pay-001")
        if "process" in steps:
            order.mark_processing()

        order.cancel(cancelled_by="CUSTOMER", reason="Changed my mind")

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Changed my mind"
        assert isinstance(order._events[-1], OrderCancelled)

    def test_shipped_order_cannot_be_cancelled(self):
        order = _make_paid_order()
        order.mark_processing()
        order.ship()
        assert not order.is_cancellable
        with pytest.raises(InvalidStatusTransition):
            order.cancel(cancelled_by="ADMIN")

    def test_cancelled_is_terminal(self):
        order = _make_order()
        order.cancel(cancelled_by="CUSTOMER")
        with pytest.raises(InvalidStatusTransition):
            order.cancel(cancelled_by="CUSTOMER")
        with pytest.raises(ValidationError):
            order.attach_tracking_number("TRK-1")

    def test_reinstate_restores_previous_status(self):
        order = _make_paid_order()
        order.cancel(cancelled_by="ADMIN", reason="Supplier out of stock")

        order.reinstate(OrderStatus.CONFIRMED.value)

        assert order.status == OrderStatus.CONFIRMED.value
        assert order.cancelled_by is None
        assert order.cancellation_reason is None
        assert isinstance(order._events[-1], OrderCancellationReverted)

    def test_only_cancelled_orders_are_reinstated(self):
        order = _make_order()
        with pytest.raises(InvalidStatusTransition):
            order.reinstate(OrderStatus.CREATED.value)

    def test_reinstate_cannot_skip_to_shipped(self):
        order = _make_order()
        order.cancel(cancelled_by="CUSTOMER")
        with pytest.raises(InvalidStatusTransition):
            order.reinstate(OrderStatus.SHIPPED.value)

    def test_transition_query(self):
        order = _make_paid_order()
        assert order.can_transition_to(OrderStatus.PROCESSING)
        assert not order.can_transition_to(OrderStatus.SHIPPED)
