"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
Checkout code only ever talks to this interface, so the FakeGateway used
in development and tests can be swapped for a real provider adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayOrder:
    """A payable order registered with the gateway."""

    gateway_order_id: str
    amount_minor: int
    currency: str
    reference: str


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_gateway_order(
        self,
        amount_minor: int,
        currency: str,
        reference: str,
    ) -> GatewayOrder:
        """Register a payable order with the gateway.

        Raises GatewayUnavailable when the provider cannot be reached.
        """
        ...

    @abstractmethod
    def verify_signature(
        self,
        gateway_order_id: str,
        payment_id: str,
        signature: str,
    ) -> bool:
        """Verify the client-side payment signature for a transaction."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str | bytes,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway.

        The signature covers the body exactly as delivered.
        """
        ...
