"""Caller identity as supplied by the upstream auth layer.

Token issuance and verification happen outside the storefront core; every
operation receives an already-authenticated ``Actor`` and only applies the
ownership rule: an order or payment belongs to its user, and ADMIN may act on
any of them.
"""

from dataclasses import dataclass
from enum import Enum

from storefront.errors import Unauthorized


class Role(Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def ensure_owner_or_admin(actor: Actor, owner_id) -> None:
    if actor.is_admin or str(owner_id) == str(actor.user_id):
        return
    raise Unauthorized("Not allowed to act on another user's resource", user_id=actor.user_id)


def ensure_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Unauthorized("Admin role required", user_id=actor.user_id)
