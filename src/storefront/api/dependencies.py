"""Request-scoped dependencies: caller identity and application services."""

from fastapi import Header, HTTPException, Request

from storefront.auth import Actor, Role
from storefront.config import Settings
from storefront.gateway.registry import GatewayRegistry
from storefront.inventory.ledger import InventoryLedger
from storefront.order.service import OrderService
from storefront.payment.service import PaymentService


def get_actor(
    x_user_id: str = Header(..., description="Authenticated user id, set by the upstream auth layer"),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
) -> Actor:
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role {x_user_role}") from None
    return Actor(user_id=x_user_id, role=role)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> InventoryLedger:
    return request.app.state.ledger


def get_gateways(request: Request) -> GatewayRegistry:
    return request.app.state.gateways


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service
