"""OrderIntent aggregate (CQRS) — a time-boxed, priced reservation of a cart.

State Machine:
    INTENT_CREATED → CONVERTED   (successful settlement)
    INTENT_CREATED → CANCELLED   (explicit user/admin cancel)
    INTENT_CREATED → EXPIRED     (expires_at elapsed, no settlement)

CONVERTED, CANCELLED and EXPIRED are terminal. An INTENT_CREATED intent
whose ``expires_at`` has passed is reported as EXPIRED by every reader even
before the status field is physically flipped.
"""

import json
import secrets
import string
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String, Text

from checkout.domain import checkout
from checkout.errors import IntentInvalidState
from checkout.intent.events import (
    OrderIntentCancelled,
    OrderIntentConverted,
    OrderIntentCreated,
    OrderIntentExpired,
    PaymentInitiated,
)
from checkout.utils.clock import as_utc

_BASE36 = string.digits + string.ascii_uppercase


class IntentStatus(Enum):
    INTENT_CREATED = "INTENT_CREATED"
    CONVERTED = "CONVERTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


_VALID_TRANSITIONS = {
    IntentStatus.INTENT_CREATED: {IntentStatus.CONVERTED, IntentStatus.CANCELLED, IntentStatus.EXPIRED},
    IntentStatus.CONVERTED: set(),  # Terminal
    IntentStatus.CANCELLED: set(),  # Terminal
    IntentStatus.EXPIRED: set(),  # Terminal
}


def can_transition(current: IntentStatus, target: IntentStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def generate_intent_number(now: datetime | None = None) -> str:
    """``INT-<epoch ms>-<7 random base36 chars>``"""
    now = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"INT-{int(now.timestamp() * 1000)}-{suffix}"


@checkout.aggregate
class OrderIntent:
    intent_number = String(required=True, max_length=40)
    user_id = Identifier(required=True)
    status = String(choices=IntentStatus, default=IntentStatus.INTENT_CREATED.value)
    cart_snapshot = Text(required=True)  # JSON: {"items": [...], "calculated_at": ...}
    subtotal = Float(required=True, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    shipping_charge = Float(default=0.0, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    discount_code = String(max_length=50)
    discount_id = Identifier()
    expires_at = DateTime(required=True)
    shipping_address_id = Identifier(required=True)
    billing_address_id = Identifier()
    pricing_metadata = Text()  # JSON: pricing breakdown and applied rules
    gateway_order_id = String(max_length=100)
    payment_id = String(max_length=100)
    order_id = Identifier()
    cancelled_by = Identifier()
    created_at = DateTime()
    cancelled_at = DateTime()
    expired_at = DateTime()
    converted_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        intent_id,
        user_id,
        cart_items,
        quote,
        expires_at,
        shipping_address_id,
        billing_address_id=None,
        now=None,
    ):
        now = now or datetime.now(UTC)
        intent = cls(
            id=str(intent_id),
            intent_number=generate_intent_number(now),
            user_id=str(user_id),
            status=IntentStatus.INTENT_CREATED.value,
            cart_snapshot=json.dumps({"items": cart_items, "calculated_at": quote.calculated_at.isoformat()}),
            subtotal=float(quote.subtotal),
            discount_amount=float(quote.discount_amount),
            tax_amount=float(quote.tax_amount),
            shipping_charge=float(quote.shipping_charge),
            total_amount=float(quote.total_amount),
            currency=quote.currency,
            discount_code=quote.discount.code if quote.discount else None,
            discount_id=quote.discount.id if quote.discount else None,
            expires_at=expires_at,
            shipping_address_id=str(shipping_address_id),
            billing_address_id=str(billing_address_id or shipping_address_id),
            pricing_metadata=json.dumps(
                {"pricing_rules_applied": quote.applied_rules, "calculation_breakdown": quote.breakdown()}
            ),
            created_at=now,
            updated_at=now,
        )
        intent.raise_(
            OrderIntentCreated(
                intent_id=str(intent.id),
                intent_number=intent.intent_number,
                user_id=str(user_id),
                total_amount=intent.total_amount,
                currency=intent.currency,
                discount_code=intent.discount_code,
                expires_at=expires_at,
            )
        )
        return intent

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def intent_status(self) -> IntentStatus:
        return IntentStatus(self.status)

    @property
    def items(self) -> list[dict]:
        return json.loads(self.cart_snapshot)["items"]

    @property
    def pricing_trace(self) -> dict:
        return json.loads(self.pricing_metadata) if self.pricing_metadata else {}

    def is_past_expiry(self, as_of: datetime) -> bool:
        return as_utc(self.expires_at) <= as_of

    def is_lapsed(self, as_of: datetime) -> bool:
        """Still INTENT_CREATED on record, but its window has closed."""
        return self.intent_status == IntentStatus.INTENT_CREATED and self.is_past_expiry(as_of)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: IntentStatus, action: str) -> None:
        if not can_transition(self.intent_status, target_status):
            raise IntentInvalidState(str(self.id), self.status, action)

    def expire(self) -> None:
        self._assert_can_transition(IntentStatus.EXPIRED, "expire")
        now = datetime.now(UTC)
        self.status = IntentStatus.EXPIRED.value
        self.expired_at = now
        self.updated_at = now
        self.raise_(OrderIntentExpired(intent_id=str(self.id), expires_at=self.expires_at, expired_at=now))

    def cancel(self, actor_id) -> None:
        self._assert_can_transition(IntentStatus.CANCELLED, "cancel")
        now = datetime.now(UTC)
        self.status = IntentStatus.CANCELLED.value
        self.cancelled_by = str(actor_id) if actor_id else None
        self.cancelled_at = now
        self.updated_at = now
        self.raise_(OrderIntentCancelled(intent_id=str(self.id), cancelled_by=self.cancelled_by, cancelled_at=now))

    def mark_converted(self, order_id, payment_id) -> None:
        self._assert_can_transition(IntentStatus.CONVERTED, "convert")
        now = datetime.now(UTC)
        self.status = IntentStatus.CONVERTED.value
        self.order_id = str(order_id)
        self.payment_id = payment_id
        self.converted_at = now
        self.updated_at = now
        self.raise_(
            OrderIntentConverted(
                intent_id=str(self.id),
                order_id=str(order_id),
                payment_id=payment_id,
                converted_at=now,
            )
        )

    def attach_gateway_order(self, gateway_order_id: str) -> None:
        """Record the gateway correlation id. Set at most once."""
        if self.intent_status != IntentStatus.INTENT_CREATED:
            raise IntentInvalidState(str(self.id), self.status, "start payment for")
        if self.gateway_order_id:
            raise IntentInvalidState(str(self.id), self.status, "replace the gateway order of")
        self.gateway_order_id = gateway_order_id
        self.updated_at = datetime.now(UTC)
        self.raise_(
            PaymentInitiated(
                intent_id=str(self.id),
                gateway_order_id=gateway_order_id,
                total_amount=self.total_amount,
            )
        )
