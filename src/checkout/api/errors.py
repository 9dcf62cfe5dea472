"""Maps checkout errors to HTTP responses.

Protean's own exceptions (ValidationError, ObjectNotFoundError, ...) are
handled by ``protean.integrations.fastapi.register_exception_handlers``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from checkout.errors import (
    CartMismatch,
    CheckoutError,
    DiscountInvalid,
    Forbidden,
    GatewayUnavailable,
    InsufficientStock,
    IntentExpired,
    IntentInvalidState,
    IntentNotFound,
    InvalidLockState,
    LockNotFound,
    PaymentSignatureMismatch,
    ServiceUnavailable,
)

logger = structlog.get_logger(__name__)

STATUS_CODES: dict[type[CheckoutError], int] = {
    CartMismatch: 400,
    DiscountInvalid: 400,
    PaymentSignatureMismatch: 400,
    Forbidden: 403,
    IntentNotFound: 404,
    LockNotFound: 404,
    InsufficientStock: 409,
    IntentInvalidState: 409,
    InvalidLockState: 409,
    IntentExpired: 410,
    GatewayUnavailable: 502,
    ServiceUnavailable: 503,
}


def status_code_for(exc: CheckoutError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.warning("Checkout request failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_checkout_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CheckoutError, checkout_error_handler)
