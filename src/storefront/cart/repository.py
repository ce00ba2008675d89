"""Cart lookups by owner."""

from storefront.cart.cart import Cart
from storefront.domain import storefront


@storefront.repository(part_of=Cart)
class CartRepository:
    def for_user(self, user_id: str) -> Cart | None:
        return self._dao.query.filter(user_id=str(user_id)).all().first

    def get_or_create(self, user_id: str) -> Cart:
        return self.for_user(user_id) or Cart.create(user_id=user_id)
