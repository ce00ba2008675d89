"""FastAPI routes for the storefront: carts, orders, payments and variants."""

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.utils.globals import current_domain

from storefront.api.dependencies import (
    get_actor,
    get_gateways,
    get_ledger,
    get_order_service,
    get_payment_service,
    get_settings,
)
from storefront.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartItemSchema,
    CartResponse,
    ChangePriceRequest,
    ConfigureGatewayRequest,
    CreateOrderRequest,
    CreatePaymentRequest,
    GatewayConfigResponse,
    OrderResponse,
    PaymentResponse,
    ReconciliationResponse,
    RefundPaymentRequest,
    RefundResponse,
    RegisterVariantRequest,
    RestockRequest,
    ShipOrderRequest,
    StatusResponse,
    StockLevelResponse,
    TrackingNumberRequest,
    UpdateCartItemRequest,
    VariantIdResponse,
    VerifyPaymentRequest,
)
from storefront.auth import Actor, ensure_admin
from storefront.cart.cart import Cart
from storefront.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from storefront.catalogue.management import ChangeSellingPrice, DeactivateVariant, RegisterVariant, get_variant
from storefront.config import Settings
from storefront.errors import InsufficientStock, VariantNotFound
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.registry import GatewayRegistry
from storefront.inventory.ledger import InventoryLedger
from storefront.order.service import OrderService
from storefront.payment.payment import PaymentProvider
from storefront.payment.service import PaymentService


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_response(user_id: str) -> CartResponse:
    cart = current_domain.repository_for(Cart).for_user(user_id)
    if cart is None:
        return CartResponse(user_id=user_id)
    return CartResponse(
        cart_id=str(cart.id),
        user_id=user_id,
        items=[CartItemSchema(variant_id=variant_id, quantity=quantity) for variant_id, quantity in cart.snapshot()],
    )


def _check_stock(ledger: InventoryLedger, variant_id: str, wanted: int) -> None:
    """Advisory check at add time; the reservation at checkout is authoritative."""
    if not get_variant(variant_id)["is_active"]:
        raise VariantNotFound(variant_id)
    levels = ledger.levels(variant_id)
    if wanted > levels.available_qty:
        raise InsufficientStock(variant_id, requested=wanted, available=levels.available_qty)


@cart_router.get("/me", response_model=CartResponse)
def get_cart(actor: Actor = Depends(get_actor)) -> CartResponse:
    return _cart_response(actor.user_id)


@cart_router.post("/me/items", status_code=201, response_model=CartResponse)
def add_to_cart(
    body: AddToCartRequest,
    actor: Actor = Depends(get_actor),
    ledger: InventoryLedger = Depends(get_ledger),
) -> CartResponse:
    """Add a variant to the caller's cart, merging with any existing line."""
    cart = current_domain.repository_for(Cart).for_user(actor.user_id)
    in_cart = cart.quantity_of(body.variant_id) if cart else 0
    _check_stock(ledger, body.variant_id, in_cart + body.quantity)

    command = AddToCart(user_id=actor.user_id, variant_id=body.variant_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _cart_response(actor.user_id)


@cart_router.put("/me/items", response_model=CartResponse)
def update_cart_item(
    body: UpdateCartItemRequest,
    actor: Actor = Depends(get_actor),
    ledger: InventoryLedger = Depends(get_ledger),
) -> CartResponse:
    _check_stock(ledger, body.variant_id, body.quantity)

    command = UpdateCartQuantity(user_id=actor.user_id, variant_id=body.variant_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _cart_response(actor.user_id)


@cart_router.delete("/me/items/{variant_id}", response_model=CartResponse)
def remove_cart_item(variant_id: str, actor: Actor = Depends(get_actor)) -> CartResponse:
    current_domain.process(RemoveFromCart(user_id=actor.user_id, variant_id=variant_id), asynchronous=False)
    return _cart_response(actor.user_id)


@cart_router.delete("/me", response_model=StatusResponse)
def clear_cart(actor: Actor = Depends(get_actor)) -> StatusResponse:
    current_domain.process(ClearCart(user_id=actor.user_id), asynchronous=False)
    return StatusResponse(status="cleared")


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(
    body: CreateOrderRequest,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Check out the caller's cart, reserving stock for every line."""
    order = orders.create_order(
        user_id=actor.user_id,
        shipping_address=body.shipping_address.model_dump(),
        notes=body.notes,
        currency=body.currency.upper(),
    )
    return OrderResponse.from_order(order)


@order_router.get("", response_model=list[OrderResponse])
def list_orders(
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    return [OrderResponse.from_order(order) for order in orders.list_orders(actor)]


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.get_order(actor, order_id))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Cancel an order and return its reserved stock to the shelf."""
    return OrderResponse.from_order(orders.cancel_order(actor, order_id, reason=body.reason))


@order_router.post("/{order_id}/processing", response_model=OrderResponse)
def mark_processing(
    order_id: str,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.mark_processing(actor, order_id))


@order_router.post("/{order_id}/ship", response_model=OrderResponse)
def ship_order(
    order_id: str,
    body: ShipOrderRequest,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.ship(actor, order_id, tracking_number=body.tracking_number))


@order_router.post("/{order_id}/deliver", response_model=OrderResponse)
def deliver_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.deliver(actor, order_id))


@order_router.put("/{order_id}/tracking", response_model=OrderResponse)
def attach_tracking_number(
    order_id: str,
    body: TrackingNumberRequest,
    actor: Actor = Depends(get_actor),
    orders: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.from_order(orders.attach_tracking_number(actor, order_id, body.tracking_number))


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=PaymentResponse)
def create_payment(
    body: CreatePaymentRequest,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Open a payment attempt for an order and create the gateway intent.

    Repeating the call with the same ``idempotency_key`` returns the same
    attempt without contacting the gateway again.
    """
    payment = payments.create_intent(
        actor,
        order_id=body.order_id,
        idempotency_key=body.idempotency_key,
        currency=body.currency,
        provider=body.provider.upper() if body.provider else None,
    )
    return PaymentResponse.from_payment(payment)


@payment_router.post("/webhooks/stripe", response_model=StatusResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default=""),
    payments: PaymentService = Depends(get_payment_service),
) -> StatusResponse:
    """Stripe event callback. The raw body is needed for signature verification."""
    payload = await request.body()
    result = await run_in_threadpool(payments.handle_webhook, PaymentProvider.STRIPE.value, payload, stripe_signature)
    return StatusResponse(status="processed" if result is not None else "ignored")


@payment_router.post("/webhooks/sslcommerz", response_model=StatusResponse)
async def sslcommerz_ipn(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
) -> StatusResponse:
    """SSLCommerz IPN. The form body carries its own ``verify_sign``."""
    payload = await request.body()
    result = await run_in_threadpool(payments.handle_webhook, PaymentProvider.SSLCOMMERZ.value, payload, "")
    return StatusResponse(status="processed" if result is not None else "ignored")


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
def configure_gateway(
    body: ConfigureGatewayRequest,
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
    gateways: GatewayRegistry = Depends(get_gateways),
) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    Lets manual API testing toggle approvals, declines and timeouts.
    """
    ensure_admin(actor)
    if settings.is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = gateways.get(PaymentProvider.FAKE)
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        unavailable=body.unavailable,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        unavailable=gateway.unavailable,
    )


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: str,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    return PaymentResponse.from_payment(payments.get_payment(actor, payment_id))


@payment_router.post("/{payment_id}/verify", response_model=ReconciliationResponse)
def verify_payment(
    payment_id: str,
    body: VerifyPaymentRequest,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> ReconciliationResponse:
    """Poll the gateway for the payment's outcome and apply it."""
    result = payments.verify(actor, payment_id, provider_payment_id=body.provider_payment_id)
    return ReconciliationResponse(
        payment_id=result.payment_id,
        status=result.status,
        applied=result.applied,
        duplicate=result.duplicate,
        needs_refund=result.needs_refund,
    )


@payment_router.post("/{payment_id}/refund", response_model=RefundResponse)
def refund_payment(
    payment_id: str,
    body: RefundPaymentRequest,
    actor: Actor = Depends(get_actor),
    payments: PaymentService = Depends(get_payment_service),
) -> RefundResponse:
    return RefundResponse(**payments.refund(actor, payment_id, amount=body.amount, reason=body.reason))


# ---------------------------------------------------------------------------
# Variant Router
# ---------------------------------------------------------------------------
variant_router = APIRouter(prefix="/variants", tags=["variants"])


@variant_router.post("", status_code=201, response_model=VariantIdResponse)
def register_variant(
    body: RegisterVariantRequest,
    actor: Actor = Depends(get_actor),
    ledger: InventoryLedger = Depends(get_ledger),
) -> VariantIdResponse:
    """Register a sellable variant and open its stock row."""
    ensure_admin(actor)
    command = RegisterVariant(
        sku=body.sku,
        product_id=body.product_id,
        supplier_id=body.supplier_id,
        supplier_price=body.supplier_price,
        selling_price=body.selling_price,
    )
    variant_id = current_domain.process(command, asynchronous=False)
    ledger.register(variant_id, available_qty=body.initial_stock)
    return VariantIdResponse(variant_id=variant_id)


@variant_router.get("/{variant_id}")
def read_variant(variant_id: str) -> dict:
    return get_variant(variant_id)


@variant_router.put("/{variant_id}/price", response_model=StatusResponse)
def change_price(
    variant_id: str,
    body: ChangePriceRequest,
    actor: Actor = Depends(get_actor),
) -> StatusResponse:
    ensure_admin(actor)
    current_domain.process(
        ChangeSellingPrice(variant_id=variant_id, selling_price=body.selling_price),
        asynchronous=False,
    )
    return StatusResponse(status="price_changed")


@variant_router.post("/{variant_id}/deactivate", response_model=StatusResponse)
def deactivate_variant(variant_id: str, actor: Actor = Depends(get_actor)) -> StatusResponse:
    ensure_admin(actor)
    current_domain.process(DeactivateVariant(variant_id=variant_id), asynchronous=False)
    return StatusResponse(status="deactivated")


@variant_router.post("/{variant_id}/restock", response_model=StockLevelResponse)
def restock_variant(
    variant_id: str,
    body: RestockRequest,
    actor: Actor = Depends(get_actor),
    ledger: InventoryLedger = Depends(get_ledger),
) -> StockLevelResponse:
    ensure_admin(actor)
    ledger.restock(variant_id, body.quantity)
    return _stock_response(ledger, variant_id)


@variant_router.get("/{variant_id}/stock", response_model=StockLevelResponse)
def stock_levels(variant_id: str, ledger: InventoryLedger = Depends(get_ledger)) -> StockLevelResponse:
    return _stock_response(ledger, variant_id)


def _stock_response(ledger: InventoryLedger, variant_id: str) -> StockLevelResponse:
    levels = ledger.levels(variant_id)
    return StockLevelResponse(
        variant_id=levels.variant_id,
        available_qty=levels.available_qty,
        reserved_qty=levels.reserved_qty,
        total_in_stock=levels.total_in_stock,
    )
