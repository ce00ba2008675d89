"""Variant registration and pricing: commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from storefront.catalogue.variant import Variant
from storefront.domain import storefront
from storefront.errors import VariantNotFound


@storefront.command(part_of="Variant")
class RegisterVariant:
    sku = String(required=True, max_length=64)
    product_id = Identifier()
    supplier_id = Identifier(required=True)
    supplier_price = Float(required=True, min_value=0.0)
    selling_price = Float(required=True, min_value=0.0)


@storefront.command(part_of="Variant")
class ChangeSellingPrice:
    variant_id = Identifier(required=True)
    selling_price = Float(required=True, min_value=0.0)


@storefront.command(part_of="Variant")
class DeactivateVariant:
    variant_id = Identifier(required=True)


@storefront.command_handler(part_of=Variant)
class ManageVariantsHandler:
    @handle(RegisterVariant)
    def register_variant(self, command):
        variant = Variant.register(
            sku=command.sku,
            product_id=command.product_id,
            supplier_id=command.supplier_id,
            supplier_price=command.supplier_price,
            selling_price=command.selling_price,
        )
        current_domain.repository_for(Variant).add(variant)
        return str(variant.id)

    @handle(ChangeSellingPrice)
    def change_selling_price(self, command):
        repo = current_domain.repository_for(Variant)
        variant = repo.get(command.variant_id)
        variant.change_selling_price(command.selling_price)
        repo.add(variant)

    @handle(DeactivateVariant)
    def deactivate_variant(self, command):
        repo = current_domain.repository_for(Variant)
        variant = repo.get(command.variant_id)
        variant.deactivate()
        repo.add(variant)


def get_variant(variant_id: str) -> dict:
    """The read view checkout and the cart rely on."""
    try:
        variant = current_domain.repository_for(Variant).get(variant_id)
    except ObjectNotFoundError:
        raise VariantNotFound(variant_id) from None
    return {
        "variant_id": str(variant.id),
        "sku": variant.sku,
        "supplier_id": str(variant.supplier_id),
        "selling_price": variant.selling_price,
        "supplier_price": variant.supplier_price,
        "is_active": variant.is_active,
    }
