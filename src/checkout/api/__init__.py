"""Checkout domain API package."""

from checkout.api.errors import register_checkout_error_handlers
from checkout.api.routes import (
    discount_router,
    intent_router,
    inventory_router,
    maintenance_router,
    payment_router,
)

__all__ = [
    "discount_router",
    "intent_router",
    "inventory_router",
    "maintenance_router",
    "payment_router",
    "register_checkout_error_handlers",
]
