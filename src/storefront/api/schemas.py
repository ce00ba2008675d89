"""Pydantic request/response schemas for the storefront API.

These are external contracts, kept separate from the internal Protean
commands and aggregates they are translated into.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class ShippingAddressSchema(BaseModel):
    full_name: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=32)
    address_line1: str = Field(..., max_length=255)
    address_line2: str | None = Field(None, max_length=255)
    city: str = Field(..., max_length=100)
    state: str | None = Field(None, max_length=100)
    postal_code: str = Field(..., max_length=20)
    country: str = Field(..., max_length=100)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
class RegisterVariantRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "sku": "MUG-WHT-11OZ",
                    "supplier_id": "sup-001",
                    "supplier_price": 4.50,
                    "selling_price": 12.00,
                    "initial_stock": 100,
                }
            ]
        }
    }

    sku: str = Field(..., max_length=64)
    product_id: str | None = None
    supplier_id: str
    supplier_price: float = Field(ge=0)
    selling_price: float = Field(ge=0)
    initial_stock: int = Field(0, ge=0)


class VariantIdResponse(BaseModel):
    variant_id: str


class ChangePriceRequest(BaseModel):
    selling_price: float = Field(ge=0)


class RestockRequest(BaseModel):
    quantity: int = Field(gt=0)


class StockLevelResponse(BaseModel):
    variant_id: str
    available_qty: int
    reserved_qty: int
    total_in_stock: int


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    variant_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    variant_id: str
    quantity: int = Field(..., ge=1)


class RemoveCartItemRequest(BaseModel):
    variant_id: str


class CartItemSchema(BaseModel):
    variant_id: str
    quantity: int


class CartResponse(BaseModel):
    cart_id: str | None = None
    user_id: str
    items: list[CartItemSchema] = []


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "full_name": "Jane Doe",
                        "phone": "+15550100",
                        "address_line1": "1 Main St",
                        "city": "Springfield",
                        "postal_code": "12345",
                        "country": "US",
                    },
                    "notes": "Leave at the door",
                    "currency": "USD",
                }
            ]
        }
    }

    shipping_address: ShippingAddressSchema
    notes: str | None = Field(None, max_length=500)
    currency: str = Field("USD", min_length=3, max_length=3)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ShipOrderRequest(BaseModel):
    tracking_number: str | None = Field(None, max_length=100)


class TrackingNumberRequest(BaseModel):
    tracking_number: str = Field(..., max_length=100)


class OrderItemSchema(BaseModel):
    variant_id: str
    sku: str | None = None
    quantity: int
    supplier_id: str | None = None
    price_at_purchase: float


class OrderResponse(BaseModel):
    order_id: str
    user_id: str
    status: str
    payment_status: str
    payment_id: str | None = None
    total_amount: float
    currency: str
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    tracking_number: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        address = order.shipping_address
        return cls(
            order_id=str(order.id),
            user_id=str(order.user_id),
            status=order.status,
            payment_status=order.payment_status,
            payment_id=str(order.payment_id) if order.payment_id else None,
            total_amount=order.total_amount,
            currency=order.currency,
            items=[
                OrderItemSchema(
                    variant_id=str(item.variant_id),
                    sku=item.sku,
                    quantity=item.quantity,
                    supplier_id=str(item.supplier_id) if item.supplier_id else None,
                    price_at_purchase=item.price_at_purchase,
                )
                for item in order.items
            ],
            shipping_address=ShippingAddressSchema(
                full_name=address.full_name,
                phone=address.phone,
                address_line1=address.address_line1,
                address_line2=address.address_line2,
                city=address.city,
                state=address.state,
                postal_code=address.postal_code,
                country=address.country,
            ),
            tracking_number=order.tracking_number,
            notes=order.notes,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
        )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class CreatePaymentRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "ord-001",
                    "idempotency_key": "ord-001-attempt-1",
                    "currency": "USD",
                }
            ]
        }
    }

    order_id: str
    idempotency_key: str = Field(..., min_length=1, max_length=255)
    currency: str | None = Field(None, min_length=3, max_length=3)
    provider: str | None = None


class VerifyPaymentRequest(BaseModel):
    provider_payment_id: str | None = None


class RefundPaymentRequest(BaseModel):
    amount: float | None = Field(None, gt=0)
    reason: str | None = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    payment_id: str
    order_id: str
    provider: str
    status: str
    amount: float
    currency: str
    provider_payment_id: str | None = None
    client_secret: str | None = None
    redirect_url: str | None = None
    refunded_amount: float = 0.0
    failure_reason: str | None = None

    @classmethod
    def from_payment(cls, payment) -> "PaymentResponse":
        return cls(
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            provider=payment.provider,
            status=payment.status,
            amount=payment.amount,
            currency=payment.currency,
            provider_payment_id=payment.provider_payment_id,
            client_secret=payment.client_secret,
            redirect_url=payment.redirect_url,
            refunded_amount=payment.refunded_amount or 0.0,
            failure_reason=payment.failure_reason,
        )


class ReconciliationResponse(BaseModel):
    payment_id: str
    status: str
    applied: bool
    duplicate: bool = False
    needs_refund: bool = False


class RefundResponse(BaseModel):
    refund_id: str
    amount: float
    fully_refunded: bool


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    unavailable: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    unavailable: bool
