"""Error taxonomy for the storefront core.

Domain rule violations on aggregates keep using Protean's ``ValidationError``
(``InvalidStatusTransition`` is one). Everything that crosses a collaborator
boundary (stock ledger, gateways, ownership checks) raises a
``StorefrontError`` subclass carrying a stable ``code`` that the API layer
maps to an HTTP status.
"""

from protean.exceptions import ValidationError


class StorefrontError(Exception):
    """Base class for storefront errors that are not aggregate validation failures."""

    code = "STOREFRONT_ERROR"

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------
class NotFound(StorefrontError):
    code = "NOT_FOUND"


class VariantNotFound(NotFound):
    code = "VARIANT_NOT_FOUND"

    def __init__(self, variant_id: str) -> None:
        super().__init__(f"Variant {variant_id} not found", variant_id=str(variant_id))


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found", order_id=str(order_id))


class PaymentNotFound(NotFound):
    code = "PAYMENT_NOT_FOUND"

    def __init__(self, reference: str) -> None:
        super().__init__(f"Payment {reference} not found", reference=str(reference))


# ---------------------------------------------------------------------------
# Checkout / stock
# ---------------------------------------------------------------------------
class EmptyCart(StorefrontError):
    code = "EMPTY_CART"

    def __init__(self, user_id: str) -> None:
        super().__init__("Cart is empty", user_id=str(user_id))


class InsufficientStock(StorefrontError):
    """Reservation condition failed. Retryable from the user's point of view."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, variant_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for {variant_id}. Only {available} available",
            variant_id=str(variant_id),
            requested=requested,
            available=available,
        )
        self.variant_id = str(variant_id)
        self.requested = requested
        self.available = available


class ReservationConflict(StorefrontError):
    code = "RESERVATION_CONFLICT"


# ---------------------------------------------------------------------------
# State machines
# ---------------------------------------------------------------------------
class InvalidStatusTransition(ValidationError):
    """Raised when an order status change would break the forward-only ordering."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})
        self.current = current
        self.target = target


class InvalidPaymentState(StorefrontError):
    code = "INVALID_PAYMENT_STATE"


# ---------------------------------------------------------------------------
# Identity / idempotency
# ---------------------------------------------------------------------------
class Unauthorized(StorefrontError):
    code = "UNAUTHORIZED"


class DuplicateAttempt(StorefrontError):
    code = "DUPLICATE_ATTEMPT"

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            "Idempotency key already used for a different payment attempt",
            idempotency_key=idempotency_key,
        )


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------
class GatewayError(StorefrontError):
    """Transient gateway failure (timeout, 5xx). Safe to retry with the same key."""

    code = "GATEWAY_ERROR"
    retryable = True


class GatewayRejected(StorefrontError):
    """Terminal gateway failure: bad signature, explicit decline, malformed event."""

    code = "GATEWAY_REJECTED"
    retryable = False
