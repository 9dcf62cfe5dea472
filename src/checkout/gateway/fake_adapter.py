"""Configurable fake payment gateway for development and testing.

Signs and verifies exactly like the production provider does:
HMAC-SHA256 (hex) over ``"{gateway_order_id}|{payment_id}"`` for payment
signatures and over the raw request body for webhooks. Tests use
``sign_payment`` / ``sign_webhook`` to build valid proofs.
"""

import hashlib
import hmac
from uuid import uuid4

from checkout.errors import GatewayUnavailable
from checkout.gateway.port import GatewayOrder, PaymentGateway

DEFAULT_SECRET = "fake-gateway-secret"


def _hmac_hex(secret: str, message: str | bytes) -> str:
    raw = message if isinstance(message, bytes) else message.encode()
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def _matches(expected: str, signature: str | None) -> bool:
    # compare_digest rejects non-ASCII str, and header values can carry it
    return hmac.compare_digest(expected.encode(), (signature or "").encode())


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, secret: str = DEFAULT_SECRET, webhook_secret: str | None = None) -> None:
        self.secret = secret
        self.webhook_secret = webhook_secret or secret
        self.available: bool = True
        self.calls: list[dict] = []
        self.orders: dict[str, GatewayOrder] = {}

    def configure(self, available: bool) -> None:
        """Configure gateway behavior at runtime."""
        self.available = available

    def create_gateway_order(self, amount_minor: int, currency: str, reference: str) -> GatewayOrder:
        self.calls.append(
            {
                "method": "create_gateway_order",
                "amount_minor": amount_minor,
                "currency": currency,
                "reference": reference,
            }
        )
        if not self.available:
            raise GatewayUnavailable()

        order = GatewayOrder(
            gateway_order_id=f"order_{uuid4().hex[:14]}",
            amount_minor=amount_minor,
            currency=currency,
            reference=reference,
        )
        self.orders[order.gateway_order_id] = order
        return order

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        return _matches(self.sign_payment(gateway_order_id, payment_id), signature)

    def verify_webhook_signature(self, payload: str | bytes, signature: str) -> bool:
        return _matches(self.sign_webhook(payload), signature)

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def sign_payment(self, gateway_order_id: str, payment_id: str) -> str:
        return _hmac_hex(self.secret, f"{gateway_order_id}|{payment_id}")

    def sign_webhook(self, payload: str | bytes) -> str:
        return _hmac_hex(self.webhook_secret, payload)
