"""Variant aggregate: the catalogue's view of a sellable unit.

Checkout only reads ``selling_price``, ``supplier_id`` and ``sku`` from here.
Stock counters for the same ``variant_id`` live in the inventory ledger.

Derived figures (margin, percentage, stock total) are plain functions computed
on demand and never stored, so they cannot drift from the fields they derive
from.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String

from storefront.catalogue.events import VariantDeactivated, VariantPriceChanged, VariantRegistered
from storefront.domain import storefront


@storefront.aggregate
class Variant:
    sku = String(required=True, max_length=64, unique=True)
    product_id = Identifier()
    supplier_id = Identifier(required=True)
    supplier_price = Float(required=True, min_value=0.0)
    selling_price = Float(required=True, min_value=0.0)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def sku_must_be_uppercase(self):
        if self.sku and self.sku != self.sku.upper():
            raise ValidationError({"sku": ["SKU must be uppercase"]})

    @classmethod
    def register(cls, sku, supplier_id, supplier_price, selling_price, product_id=None):
        now = datetime.now(UTC)
        variant = cls(
            sku=sku.strip().upper(),
            product_id=product_id,
            supplier_id=supplier_id,
            supplier_price=supplier_price,
            selling_price=selling_price,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        variant.raise_(
            VariantRegistered(
                variant_id=str(variant.id),
                sku=variant.sku,
                supplier_id=str(supplier_id),
                supplier_price=supplier_price,
                selling_price=selling_price,
                registered_at=now,
            )
        )
        return variant

    def change_selling_price(self, new_price: float) -> None:
        if new_price < 0:
            raise ValidationError({"selling_price": ["Selling price cannot be negative"]})

        previous = self.selling_price
        now = datetime.now(UTC)
        self.selling_price = new_price
        self.updated_at = now
        self.raise_(
            VariantPriceChanged(
                variant_id=str(self.id),
                previous_price=previous,
                new_price=new_price,
                changed_at=now,
            )
        )

    def deactivate(self) -> None:
        if not self.is_active:
            return
        now = datetime.now(UTC)
        self.is_active = False
        self.updated_at = now
        self.raise_(VariantDeactivated(variant_id=str(self.id), deactivated_at=now))


# ---------------------------------------------------------------------------
# Derived figures
# ---------------------------------------------------------------------------
def profit_margin(variant: Variant) -> float:
    return round(variant.selling_price - variant.supplier_price, 2)


def profit_percentage(variant: Variant) -> float:
    if not variant.supplier_price:
        return 0.0
    return round(profit_margin(variant) / variant.supplier_price * 100, 2)


def total_in_stock(available_qty: int, reserved_qty: int) -> int:
    return available_qty + reserved_qty
