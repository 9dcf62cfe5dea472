"""Inbound payment gateway webhooks.

Delivery is at-least-once: the same ``payment.captured`` can arrive any
number of times, before or after the client's own confirmation call. Every
authenticated delivery is acknowledged so the gateway stops retrying.
Processing failures are logged for manual reconciliation instead of being
surfaced to the gateway.

Only the envelope signature is checked strictly. A delivery that fails it
raises PaymentSignatureMismatch and is rejected.
"""

import json
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from checkout import audit
from checkout.errors import CheckoutError, PaymentSignatureMismatch
from checkout.gateway import get_gateway
from checkout.intent.intent import OrderIntent
from checkout.settlement.converter import PaymentProof, convert, find_order_for_intent

logger = structlog.get_logger(__name__)

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"


@dataclass(frozen=True)
class WebhookAck:
    status: str  # processed | duplicate | ignored | failed
    received: bool = True
    order_id: str | None = None

    def to_dict(self) -> dict:
        return {"received": self.received, "status": self.status, "order_id": self.order_id}


def _field(payload: dict, *names):
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return None


def _intent_for_gateway_order(gateway_order_id: str) -> OrderIntent | None:
    repo = current_domain.repository_for(OrderIntent)
    intents = repo._dao.query.filter(gateway_order_id=gateway_order_id).all().items
    return intents[0] if intents else None


def _on_captured(payload: dict) -> WebhookAck:
    gateway_order_id = _field(payload, "gatewayOrderId", "gateway_order_id")
    payment_id = _field(payload, "paymentId", "payment_id")
    amount = _field(payload, "amount", "amount_minor")
    if not gateway_order_id or not payment_id:
        logger.warning("Captured payment webhook is missing identifiers")
        return WebhookAck(status="ignored")

    intent = _intent_for_gateway_order(gateway_order_id)
    if intent is None:
        logger.warning("No order intent for captured payment", gateway_order_id=gateway_order_id)
        return WebhookAck(status="ignored")

    existing = find_order_for_intent(intent.id)
    if existing is not None:
        logger.info("Duplicate payment webhook", gateway_order_id=gateway_order_id, order_id=str(existing.id))
        return WebhookAck(status="duplicate", order_id=str(existing.id))

    order = convert(
        intent.id,
        PaymentProof(
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
            amount_minor=int(amount) if amount is not None else None,
            pre_verified=True,
        ),
    )
    return WebhookAck(status="processed", order_id=str(order.id))


def _on_failed(payload: dict) -> WebhookAck:
    gateway_order_id = _field(payload, "gatewayOrderId", "gateway_order_id")
    intent = _intent_for_gateway_order(gateway_order_id) if gateway_order_id else None
    logger.info("Payment failed at gateway", gateway_order_id=gateway_order_id)
    audit.record(
        "payment_failed",
        "order_intent",
        str(intent.id) if intent else str(gateway_order_id),
        actor_id=intent.user_id if intent else None,
        new_values={
            "gateway_order_id": gateway_order_id,
            "payment_id": _field(payload, "paymentId", "payment_id"),
            "status": _field(payload, "status"),
        },
    )
    return WebhookAck(status="processed")


def handle_webhook(raw_body: str | bytes, signature: str | None) -> WebhookAck:
    if not signature or not get_gateway().verify_webhook_signature(raw_body, signature):
        logger.warning("Webhook signature rejected")
        raise PaymentSignatureMismatch()

    try:
        body = raw_body.decode() if isinstance(raw_body, bytes) else raw_body
        payload = json.loads(body)
    except ValueError:
        # UnicodeDecodeError included
        logger.warning("Webhook body is not UTF-8 JSON")
        return WebhookAck(status="failed")
    if not isinstance(payload, dict):
        return WebhookAck(status="failed")

    event = payload.get("event")
    try:
        if event == PAYMENT_CAPTURED:
            return _on_captured(payload)
        if event == PAYMENT_FAILED:
            return _on_failed(payload)
    except CheckoutError as exc:
        logger.warning("Webhook could not be settled", webhook_event=event, code=exc.code, error=exc.message)
        return WebhookAck(status="failed")
    except Exception:
        logger.exception("Webhook processing failed", webhook_event=event)
        return WebhookAck(status="failed")

    logger.debug("Webhook event ignored", webhook_event=event)
    return WebhookAck(status="ignored")
