"""Domain events for the Variant aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="Variant")
class VariantRegistered:
    """A sellable variant was added to the catalogue."""

    __version__ = 1

    variant_id = Identifier(required=True)
    sku = String(required=True)
    supplier_id = Identifier(required=True)
    supplier_price = Float(required=True)
    selling_price = Float(required=True)
    registered_at = DateTime(required=True)


@storefront.event(part_of="Variant")
class VariantPriceChanged:
    """Selling price changed. Orders already placed keep their locked price."""

    __version__ = 1

    variant_id = Identifier(required=True)
    previous_price = Float(required=True)
    new_price = Float(required=True)
    changed_at = DateTime(required=True)


@storefront.event(part_of="Variant")
class VariantDeactivated:
    __version__ = 1

    variant_id = Identifier(required=True)
    deactivated_at = DateTime(required=True)
