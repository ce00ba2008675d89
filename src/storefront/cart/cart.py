"""Cart aggregate: one per user, a set of ``(variant_id, quantity)`` lines.

Checkout reads a snapshot of the lines and clears the cart in the same unit of
work that persists the Order.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer

from storefront.cart.events import CartCleared, CartItemAdded, CartItemRemoved
from storefront.domain import storefront


@storefront.entity(part_of="Cart")
class CartItem:
    variant_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@storefront.aggregate
class Cart:
    user_id = Identifier(required=True, unique=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def _find(self, variant_id):
        return next((i for i in self.items if str(i.variant_id) == str(variant_id)), None)

    def quantity_of(self, variant_id) -> int:
        item = self._find(variant_id)
        return item.quantity if item else 0

    def snapshot(self) -> list[tuple[str, int]]:
        """Lines as plain ``(variant_id, quantity)`` pairs, sorted for stable comparison."""
        return sorted((str(i.variant_id), i.quantity) for i in self.items)

    def add_item(self, variant_id, quantity):
        """Add a variant, or increase its quantity if it is already in the cart."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        existing = self._find(variant_id)
        if existing:
            existing.quantity += quantity
        else:
            self.add_items(CartItem(variant_id=variant_id, quantity=quantity))

        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                user_id=str(self.user_id),
                variant_id=str(variant_id),
                quantity=quantity,
            )
        )

    def update_quantity(self, variant_id, quantity):
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        item = self._find(variant_id)
        if item is None:
            raise ValidationError({"variant_id": ["Item not found in cart"]})

        item.quantity = quantity
        self.updated_at = datetime.now(UTC)

    def remove_item(self, variant_id):
        item = self._find(variant_id)
        if item is None:
            raise ValidationError({"variant_id": ["Item not found in cart"]})

        self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemRemoved(
                cart_id=str(self.id),
                user_id=str(self.user_id),
                variant_id=str(variant_id),
            )
        )

    def clear(self):
        count = len(self.items)
        if count:
            self.remove_items(list(self.items))
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCleared(cart_id=str(self.id), user_id=str(self.user_id), item_count=count))
