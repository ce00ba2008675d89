"""Order application service: checkout, cancellation and fulfilment.

Stock lives in the inventory ledger while orders live in the Protean domain,
so no single database transaction spans both. Each multi-step operation keeps
an explicit list of the ledger moves it has made and reverses them when a
later step fails, before re-raising the original error:

* checkout    reserve each line, then ``PlaceOrder``; on failure release all
* cancel      ``CancelOrder``, then release each line; on failure re-reserve
              and ``ReinstateOrder``
* ship        commit each line's stock as sold, then ``ShipOrder``; on failure
              put the committed lines back on reservation
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.auth import Actor, ensure_admin, ensure_owner_or_admin
from storefront.cart.cart import Cart
from storefront.catalogue.variant import Variant
from storefront.errors import EmptyCart, InvalidStatusTransition, OrderNotFound, ReservationConflict, VariantNotFound
from storefront.inventory.ledger import InventoryLedger, Reservation
from storefront.order.cancellation import CancelOrder, ReinstateOrder
from storefront.order.creation import PlaceOrder
from storefront.order.fulfillment import AttachTrackingNumber, DeliverOrder, MarkProcessing, ShipOrder
from storefront.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


class OrderService:
    def __init__(self, ledger: InventoryLedger) -> None:
        self.ledger = ledger

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, actor: Actor, order_id: str) -> Order:
        order = self._load(order_id)
        ensure_owner_or_admin(actor, order.user_id)
        return order

    def list_orders(self, actor: Actor) -> list[Order]:
        return current_domain.repository_for(Order).for_user(actor.user_id)

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def create_order(self, user_id: str, shipping_address: dict, notes: str | None = None, currency: str = "USD") -> Order:
        """Turn the user's cart into an order, reserving every line or none."""
        cart = current_domain.repository_for(Cart).for_user(user_id)
        if cart is None or not cart.items:
            raise EmptyCart(user_id)

        snapshot = cart.snapshot()
        variants = current_domain.repository_for(Variant)
        reservations: list[Reservation] = []
        lines = []

        try:
            for variant_id, quantity in snapshot:
                variant = self._active_variant(variants, variant_id)
                reservations.append(self.ledger.reserve(variant_id, quantity))
                lines.append(
                    {
                        "variant_id": variant_id,
                        "sku": variant.sku,
                        "quantity": quantity,
                        "supplier_id": str(variant.supplier_id),
                        "price_at_purchase": variant.selling_price,
                    }
                )

            order_id = current_domain.process(
                PlaceOrder(
                    user_id=user_id,
                    lines=json.dumps(lines),
                    cart_snapshot=json.dumps(snapshot),
                    shipping_address=json.dumps(shipping_address),
                    notes=notes,
                    currency=currency,
                ),
                asynchronous=False,
            )
        except Exception as exc:
            logger.warning(
                "checkout_reservation_failed",
                user_id=str(user_id),
                error=type(exc).__name__,
                reservations_to_release=len(reservations),
            )
            self._release_all(reservations)
            raise

        logger.info("order_placed", order_id=order_id, user_id=str(user_id), lines=len(lines))
        return current_domain.repository_for(Order).get(order_id)

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_order(self, actor: Actor, order_id: str, reason: str | None = None) -> Order:
        """Cancel, then return every line's reserved stock.

        The status flips first so that of two concurrent cancels only one gets
        to release stock. If a release fails, the lines already returned are
        reserved again and the order goes back to the status it had.
        """
        order = self._load(order_id)
        ensure_owner_or_admin(actor, order.user_id)
        if not order.is_cancellable:
            raise InvalidStatusTransition(order.status, OrderStatus.CANCELLED.value)

        previous_status = current_domain.process(
            CancelOrder(order_id=order_id, cancelled_by=actor.role.value, reason=reason),
            asynchronous=False,
        )

        released: list[Reservation] = []
        try:
            for item in order.items:
                self.ledger.release(str(item.variant_id), item.quantity)
                released.append(Reservation(variant_id=str(item.variant_id), quantity=item.quantity))
        except Exception as exc:
            logger.error(
                "cancellation_release_failed",
                order_id=order_id,
                error=type(exc).__name__,
                released=len(released),
            )
            self._restore_all(released)
            current_domain.process(ReinstateOrder(order_id=order_id, status=previous_status), asynchronous=False)
            raise

        if order.is_paid:
            logger.warning("paid_order_cancelled", order_id=order_id, payment_id=str(order.payment_id))
        logger.info("order_cancelled", order_id=order_id, cancelled_by=actor.role.value, released=len(released))
        return self._load(order_id)

    # -------------------------------------------------------------------
    # Fulfilment (operator actions)
    # -------------------------------------------------------------------
    def mark_processing(self, actor: Actor, order_id: str) -> Order:
        ensure_admin(actor)
        current_domain.process(MarkProcessing(order_id=order_id), asynchronous=False)
        return self._load(order_id)

    def ship(self, actor: Actor, order_id: str, tracking_number: str | None = None) -> Order:
        """Commit each line's reserved stock as sold, then mark the order SHIPPED."""
        ensure_admin(actor)
        order = self._load(order_id)
        if not order.can_transition_to(OrderStatus.SHIPPED):
            raise InvalidStatusTransition(order.status, OrderStatus.SHIPPED.value)

        committed: list[Reservation] = []
        try:
            for item in order.items:
                self.ledger.commit(str(item.variant_id), item.quantity)
                committed.append(Reservation(variant_id=str(item.variant_id), quantity=item.quantity))

            current_domain.process(ShipOrder(order_id=order_id, tracking_number=tracking_number), asynchronous=False)
        except Exception as exc:
            logger.error(
                "shipment_failed",
                order_id=order_id,
                error=type(exc).__name__,
                committed=len(committed),
            )
            self._uncommit_all(committed)
            raise

        logger.info("order_shipped", order_id=order_id, lines=len(committed))
        return self._load(order_id)

    def deliver(self, actor: Actor, order_id: str) -> Order:
        ensure_admin(actor)
        current_domain.process(DeliverOrder(order_id=order_id), asynchronous=False)
        return self._load(order_id)

    def attach_tracking_number(self, actor: Actor, order_id: str, tracking_number: str) -> Order:
        ensure_admin(actor)
        current_domain.process(
            AttachTrackingNumber(order_id=order_id, tracking_number=tracking_number),
            asynchronous=False,
        )
        return self._load(order_id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _load(self, order_id: str) -> Order:
        try:
            return current_domain.repository_for(Order).get(order_id)
        except ObjectNotFoundError:
            raise OrderNotFound(order_id) from None

    @staticmethod
    def _active_variant(variants, variant_id: str) -> Variant:
        try:
            variant = variants.get(variant_id)
        except ObjectNotFoundError:
            raise VariantNotFound(variant_id) from None
        if not variant.is_active:
            raise VariantNotFound(variant_id)
        return variant

    def _release_all(self, reservations: list[Reservation]) -> None:
        failed = self._undo_each(reservations, self.ledger.release, "reservation_release_failed")
        if failed:
            raise ReservationConflict("Reserved stock could not be released", variant_ids=failed)

    def _restore_all(self, released: list[Reservation]) -> None:
        failed = self._undo_each(released, self.ledger.reserve, "reservation_restore_failed")
        if failed:
            raise ReservationConflict("Released stock could not be reserved again", variant_ids=failed)

    def _uncommit_all(self, committed: list[Reservation]) -> None:
        failed = self._undo_each(committed, self.ledger.uncommit, "stock_uncommit_failed")
        if failed:
            raise ReservationConflict("Committed stock could not be put back on reservation", variant_ids=failed)

    @staticmethod
    def _undo_each(moves: list[Reservation], undo, failure_event: str) -> list[str]:
        """Apply ``undo`` to every move, newest first. Returns the variants it could not undo."""
        failed = []
        for move in reversed(moves):
            try:
                undo(move.variant_id, move.quantity)
            except Exception:
                logger.error(failure_event, variant_id=move.variant_id, quantity=move.quantity, exc_info=True)
                failed.append(move.variant_id)
        return failed
