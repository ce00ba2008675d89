"""Map storefront and Protean errors onto HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.errors import (
    DuplicateAttempt,
    EmptyCart,
    GatewayError,
    GatewayRejected,
    InsufficientStock,
    InvalidPaymentState,
    InvalidStatusTransition,
    NotFound,
    ReservationConflict,
    StorefrontError,
    Unauthorized,
)

logger = structlog.get_logger(__name__)

_STATUS_CODES: list[tuple[type[StorefrontError], int]] = [
    (NotFound, 404),
    (EmptyCart, 400),
    (InsufficientStock, 409),
    (ReservationConflict, 409),
    (InvalidPaymentState, 409),
    (DuplicateAttempt, 409),
    (Unauthorized, 403),
    (GatewayError, 502),
    (GatewayRejected, 400),
]


def status_code_for(error: StorefrontError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log("request_failed", path=request.url.path, code=exc.code, status_code=status_code)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


async def invalid_transition_handler(request: Request, exc: InvalidStatusTransition) -> JSONResponse:
    logger.warning("invalid_status_transition", path=request.url.path, current=exc.current, target=exc.target)
    return JSONResponse(
        status_code=409,
        content={"error": {"code": "INVALID_STATUS_TRANSITION", "message": exc.messages}},
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    # Transitions share the ValidationError base but are conflicts, not bad input
    if isinstance(exc, InvalidStatusTransition):
        return await invalid_transition_handler(request, exc)
    return JSONResponse(status_code=422, content={"error": {"code": "VALIDATION_ERROR", "message": exc.messages}})


async def object_not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": {"code": "NOT_FOUND", "message": str(exc)}})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(InvalidStatusTransition, invalid_transition_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, object_not_found_handler)
