"""Inventory ledger: per-variant available/reserved counters.

Stock moves between two counters on a single ``variant_stock`` row:

    restock   →  available += q
    reserve   →  available -= q, reserved += q     (only if available >= q)
    release   →  available += q, reserved -= q     (only if reserved >= q)
    commit    →  reserved -= q                     (sale-through on shipment)
    uncommit  →  reserved += q                     (shipment rolled back)

Every mutation is one conditional ``UPDATE`` statement, so the row is the unit
of atomicity and concurrent checkouts on unrelated variants never contend.
When the ``WHERE`` guard does not match, the row is re-read inside the same
transaction to tell a missing variant from an exhausted one.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine

from storefront.errors import InsufficientStock, ReservationConflict, VariantNotFound

logger = structlog.get_logger(__name__)

metadata = MetaData()

variant_stock = Table(
    "variant_stock",
    metadata,
    Column("variant_id", String(64), primary_key=True),
    Column("available_qty", Integer, nullable=False, default=0),
    Column("reserved_qty", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True)),
    CheckConstraint("available_qty >= 0", name="available_qty_non_negative"),
    CheckConstraint("reserved_qty >= 0", name="reserved_qty_non_negative"),
)


@dataclass(frozen=True)
class StockLevel:
    variant_id: str
    available_qty: int
    reserved_qty: int

    @property
    def total_in_stock(self) -> int:
        return self.available_qty + self.reserved_qty


@dataclass(frozen=True)
class Reservation:
    """A successful hold of ``quantity`` units on one variant."""

    variant_id: str
    quantity: int


def _assert_positive(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})


class InventoryLedger:
    """Atomic stock primitives over a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_uri(cls, database_uri: str) -> "InventoryLedger":
        connect_args = {}
        if database_uri.startswith("sqlite"):
            # Writers queue on SQLite's file lock instead of failing fast
            connect_args = {"check_same_thread": False, "timeout": 30}
        return cls(create_engine(database_uri, connect_args=connect_args, pool_pre_ping=True))

    # -------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------
    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        metadata.drop_all(self.engine)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def _read(self, conn: Connection, variant_id: str) -> StockLevel | None:
        row = conn.execute(
            select(variant_stock.c.available_qty, variant_stock.c.reserved_qty).where(
                variant_stock.c.variant_id == str(variant_id)
            )
        ).first()
        if row is None:
            return None
        return StockLevel(
            variant_id=str(variant_id),
            available_qty=row.available_qty,
            reserved_qty=row.reserved_qty,
        )

    def levels(self, variant_id: str) -> StockLevel:
        with self.engine.connect() as conn:
            level = self._read(conn, variant_id)
        if level is None:
            raise VariantNotFound(variant_id)
        return level

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def register(self, variant_id: str, available_qty: int = 0) -> StockLevel:
        """Create the stock row for a variant. Registering twice is a no-op."""
        if available_qty < 0:
            raise ValidationError({"available_qty": ["Stock cannot be negative"]})

        with self.engine.begin() as conn:
            existing = self._read(conn, variant_id)
            if existing is not None:
                return existing
            conn.execute(
                insert(variant_stock).values(
                    variant_id=str(variant_id),
                    available_qty=available_qty,
                    reserved_qty=0,
                    updated_at=datetime.now(UTC),
                )
            )

        logger.info("variant_stock_registered", variant_id=str(variant_id), available_qty=available_qty)
        return StockLevel(variant_id=str(variant_id), available_qty=available_qty, reserved_qty=0)

    def reserve(self, variant_id: str, quantity: int) -> Reservation:
        """Move ``quantity`` units from available to reserved, or fail without side effects."""
        _assert_positive(quantity)

        with self.engine.begin() as conn:
            result = conn.execute(
                update(variant_stock)
                .where(
                    variant_stock.c.variant_id == str(variant_id),
                    variant_stock.c.available_qty >= quantity,
                )
                .values(
                    available_qty=variant_stock.c.available_qty - quantity,
                    reserved_qty=variant_stock.c.reserved_qty + quantity,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount != 1:
                current = self._read(conn, variant_id)
                if current is None:
                    raise VariantNotFound(variant_id)
                raise InsufficientStock(variant_id, requested=quantity, available=current.available_qty)

        logger.debug("stock_reserved", variant_id=str(variant_id), quantity=quantity)
        return Reservation(variant_id=str(variant_id), quantity=quantity)

    def release(self, variant_id: str, quantity: int) -> None:
        """Return ``quantity`` reserved units to available stock."""
        _assert_positive(quantity)
        self._move_reserved(variant_id, quantity, back_to_available=True)
        logger.debug("stock_released", variant_id=str(variant_id), quantity=quantity)

    def commit(self, variant_id: str, quantity: int) -> None:
        """Consume ``quantity`` reserved units: the goods have left the warehouse."""
        _assert_positive(quantity)
        self._move_reserved(variant_id, quantity, back_to_available=False)
        logger.debug("stock_committed", variant_id=str(variant_id), quantity=quantity)

    def uncommit(self, variant_id: str, quantity: int) -> None:
        """Put committed units back on reservation when a shipment does not go through."""
        _assert_positive(quantity)

        with self.engine.begin() as conn:
            result = conn.execute(
                update(variant_stock)
                .where(variant_stock.c.variant_id == str(variant_id))
                .values(
                    reserved_qty=variant_stock.c.reserved_qty + quantity,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount != 1:
                raise VariantNotFound(variant_id)

        logger.debug("stock_uncommitted", variant_id=str(variant_id), quantity=quantity)

    def restock(self, variant_id: str, quantity: int) -> StockLevel:
        _assert_positive(quantity)

        with self.engine.begin() as conn:
            result = conn.execute(
                update(variant_stock)
                .where(variant_stock.c.variant_id == str(variant_id))
                .values(
                    available_qty=variant_stock.c.available_qty + quantity,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount != 1:
                raise VariantNotFound(variant_id)
            level = self._read(conn, variant_id)

        logger.info("variant_restocked", variant_id=str(variant_id), quantity=quantity)
        return level

    def _move_reserved(self, variant_id: str, quantity: int, back_to_available: bool) -> None:
        values = {
            "reserved_qty": variant_stock.c.reserved_qty - quantity,
            "updated_at": datetime.now(UTC),
        }
        if back_to_available:
            values["available_qty"] = variant_stock.c.available_qty + quantity

        with self.engine.begin() as conn:
            result = conn.execute(
                update(variant_stock)
                .where(
                    variant_stock.c.variant_id == str(variant_id),
                    variant_stock.c.reserved_qty >= quantity,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                current = self._read(conn, variant_id)
                if current is None:
                    raise VariantNotFound(variant_id)
                raise ReservationConflict(
                    f"Cannot move {quantity} reserved units of {variant_id}; only {current.reserved_qty} reserved",
                    variant_id=str(variant_id),
                    requested=quantity,
                    reserved=current.reserved_qty,
                )
