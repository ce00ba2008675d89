"""Storefront FastAPI application.

Single-domain web server that processes commands synchronously via HTTP.
Every request runs inside the storefront domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.config import Settings
from storefront.domain import storefront
from storefront.gateway import GatewayRegistry, build_gateways
from storefront.inventory.ledger import InventoryLedger
from storefront.order.service import OrderService
from storefront.payment.service import PaymentService
from storefront.utils.logging import bind_request_context, clear_request_context, configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV controls which domain.toml overlay is applied.
storefront.init()


def create_app(
    settings: Settings | None = None,
    ledger: InventoryLedger | None = None,
    gateways: GatewayRegistry | None = None,
) -> FastAPI:
    """Build the application with its collaborators wired once at start-up."""
    settings = settings or Settings()
    configure_logging(settings)

    if ledger is None:
        ledger = InventoryLedger.from_uri(settings.inventory_database_uri)
        ledger.create_schema()
    gateways = gateways or build_gateways(settings)

    app = FastAPI(
        title="Storefront API",
        description="Dropshipping storefront: carts, orders, inventory reservation and payments",
    )
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.gateways = gateways
    app.state.order_service = OrderService(ledger)
    app.state.payment_service = PaymentService(gateways)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url] if settings.is_production else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the storefront domain context and bind request fields for logging."""
        bind_request_context(
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("x-user-id"),
        )
        try:
            with storefront.domain_context():
                response = await call_next(request)
        finally:
            clear_request_context()
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    from storefront.api import (
        cart_router,
        order_router,
        payment_router,
        register_exception_handlers,
        variant_router,
    )

    register_exception_handlers(app)
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(variant_router)

    # -----------------------------------------------------------------------
    # Health / root
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "domain": storefront.name,
                "gateways": gateways.names,
            }
        )

    return app


app = create_app()
