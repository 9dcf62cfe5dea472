"""Checkout error taxonomy.

Every error carries a machine-readable ``code`` so clients can refresh and
retry, a human ``message``, and optional structured ``details``. The API
layer maps each class to an HTTP status (see checkout.api.errors).

Bad input shape is not modelled here: it is raised as protean's
``ValidationError`` with the usual ``{field: [messages]}`` payload.
"""

from dataclasses import asdict, dataclass


class CheckoutError(Exception):
    """Base exception for all checkout errors."""

    code = "CHECKOUT_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


@dataclass(frozen=True)
class LineMismatch:
    """One cart line that no longer matches the catalog."""

    target: str
    reason: str  # not_found, inactive, insufficient_stock, price_changed
    message: str
    requested: int | None = None
    available: int | None = None
    expected_price: float | None = None
    current_price: float | None = None


class CartMismatch(CheckoutError):
    """Raised when cart lines drifted from the catalog. Carries every mismatch."""

    code = "CART_MISMATCH"

    def __init__(self, mismatches: list[LineMismatch]):
        self.mismatches = list(mismatches)
        super().__init__(
            f"{len(self.mismatches)} cart line(s) need attention",
            {"mismatches": [asdict(m) for m in self.mismatches]},
        )


class InsufficientStock(CheckoutError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, target: str, requested: int, available: int):
        self.target = target
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {target}: only {available} available",
            {"target": target, "requested": requested, "available": available},
        )


class DiscountInvalid(CheckoutError):
    """Raised when a discount code cannot be applied. Lists every failing reason."""

    code = "DISCOUNT_INVALID"

    def __init__(self, code: str | None, reasons: list[str]):
        self.discount_code = code
        self.reasons = list(reasons)
        super().__init__(
            "; ".join(self.reasons) or "Invalid discount code",
            {"discount_code": code, "reasons": self.reasons},
        )


class IntentNotFound(CheckoutError):
    code = "INTENT_NOT_FOUND"

    def __init__(self, intent_id: str):
        self.intent_id = intent_id
        super().__init__(f"Order intent not found: {intent_id}", {"intent_id": intent_id})


class IntentExpired(CheckoutError):
    code = "INTENT_EXPIRED"

    def __init__(self, intent_id: str):
        self.intent_id = intent_id
        super().__init__(
            "Order intent has expired. Please start checkout again.",
            {"intent_id": intent_id},
        )


class IntentInvalidState(CheckoutError):
    code = "INTENT_INVALID_STATE"

    def __init__(self, intent_id: str, status: str, action: str):
        self.intent_id = intent_id
        self.status = status
        super().__init__(
            f"Cannot {action} an order intent in status {status}",
            {"intent_id": intent_id, "status": status, "action": action},
        )


class LockNotFound(CheckoutError):
    code = "LOCK_NOT_FOUND"

    def __init__(self, lock_id: str):
        self.lock_id = lock_id
        super().__init__(f"Inventory lock not found: {lock_id}", {"lock_id": lock_id})


class InvalidLockState(CheckoutError):
    code = "INVALID_LOCK_STATE"

    def __init__(self, lock_id: str, status: str, action: str):
        self.lock_id = lock_id
        self.status = status
        super().__init__(
            f"Cannot {action} inventory lock in status {status}",
            {"lock_id": lock_id, "status": status, "action": action},
        )


class PaymentSignatureMismatch(CheckoutError):
    """Payment proof failed verification. The message never echoes proof material."""

    code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self):
        super().__init__("Payment verification failed")


class GatewayUnavailable(CheckoutError):
    code = "GATEWAY_UNAVAILABLE"

    def __init__(self, reason: str = "Payment gateway is unavailable"):
        super().__init__(reason)


class ServiceUnavailable(CheckoutError):
    code = "CHECKOUT_UNAVAILABLE"

    def __init__(self, reason: str):
        super().__init__(reason, {"reason": reason})


class Forbidden(CheckoutError):
    code = "FORBIDDEN"

    def __init__(self, message: str = "Not allowed to act on this order intent"):
        super().__init__(message)
