"""Order intent application service — create, read, cancel, start payment.

Creation is a multi-step reservation:

    revalidate cart → compute price → reserve every line (ascending target
    order) → lock discount → persist intent

Each step that succeeds records how to undo itself on a CompensationStack.
Any failure unwinds the stack in reverse so no reservation or discount lock
survives a failed creation.

These operations run outside a protean UnitOfWork. Stock decrements, lock
records, discount locks and status transitions are written immediately.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout import audit
from checkout.catalog.port import Target
from checkout.config import get_config
from checkout.discount import coordinator
from checkout.errors import Forbidden, IntentExpired, IntentInvalidState, ServiceUnavailable
from checkout.gateway import get_gateway
from checkout.intent import lifecycle, reaper
from checkout.intent.intent import IntentStatus, OrderIntent
from checkout.intent.revalidation import CartLine, revalidate_cart, validate_lines
from checkout.inventory import ledger
from checkout.pricing.engine import PriceQuote, compute_price, to_minor_units
from checkout.saga import CompensationStack
from checkout.utils.store import persist

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    """What the client needs to open the gateway's payment sheet."""

    intent_id: str
    intent_number: str
    gateway_order_id: str
    amount_minor: int
    currency: str


def _snapshot_items(quote: PriceQuote, lines) -> list[dict]:
    """Freeze resolved catalog data so later catalog edits cannot leak in."""
    items = []
    for quoted, line in zip(quote.lines, lines, strict=True):
        product, variant = line.snapshot.product, line.snapshot.variant
        items.append(
            {
                "product_id": quoted.product_id,
                "variant_id": quoted.variant_id,
                "target": str(quoted.target),
                "product_name": product.name,
                "quantity": quoted.quantity,
                "base_price": str(quoted.base_price),
                "unit_price": str(quoted.unit_price),
                "line_total": str(quoted.line_total),
                "applied_rules": list(quoted.applied_rules),
                "variant": (
                    {
                        "sku": variant.sku,
                        "size": variant.size,
                        "color": variant.color,
                        "finish": variant.finish,
                        "weight": variant.weight,
                    }
                    if variant is not None
                    else None
                ),
            }
        )
    return items


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_intent(
    user_id,
    lines: list[CartLine],
    shipping_address_id,
    discount_code: str | None = None,
    billing_address_id=None,
    as_of: datetime | None = None,
) -> OrderIntent:
    config = get_config()
    reason = config.unavailable_reason()
    if reason:
        raise ServiceUnavailable(reason)

    errors = {}
    if not user_id:
        errors["user_id"] = ["User is required"]
    if not shipping_address_id:
        errors["shipping_address_id"] = ["Shipping address is required"]
    if errors:
        raise ValidationError(errors)
    validate_lines(lines)

    as_of = as_of or datetime.now(UTC)
    targets = {Target.for_line(line.product_id, line.variant_id) for line in lines}
    reaper.reclaim_lapsed(targets, as_of)

    priced_lines = revalidate_cart(lines, as_of)
    pricing = config.snapshot()
    quote = compute_price(priced_lines, discount_code, pricing, as_of)

    intent_id = str(uuid4())
    expires_at = as_of + timedelta(minutes=pricing.lock_duration_minutes)

    with CompensationStack("create_intent", intent_id=intent_id, user_id=str(user_id)) as saga:
        for line in sorted(priced_lines, key=lambda pl: pl.target.sort_key):
            lock = ledger.reserve(line.target, line.quantity, intent_id, expires_at)
            saga.push(f"release {line.target}", ledger.release, lock.id, "rollback")

        if quote.discount is not None:
            coordinator.lock(quote.discount.id, intent_id, expires_at, as_of)
            saga.push("unlock discount", coordinator.unlock, quote.discount.id, intent_id, "rollback")

        intent = OrderIntent.create(
            intent_id=intent_id,
            user_id=user_id,
            cart_items=_snapshot_items(quote, priced_lines),
            quote=quote,
            expires_at=expires_at,
            shipping_address_id=shipping_address_id,
            billing_address_id=billing_address_id,
            now=as_of,
        )
        persist(intent)
        saga.discard()

    logger.info(
        "Order intent created",
        intent_id=intent_id,
        intent_number=intent.intent_number,
        user_id=str(user_id),
        total=intent.total_amount,
        lines=len(priced_lines),
        expires_at=expires_at.isoformat(),
    )
    audit.record(
        "order_intent_created",
        "order_intent",
        intent_id,
        actor_id=user_id,
        new_values={
            "intent_number": intent.intent_number,
            "status": intent.status,
            "total_amount": intent.total_amount,
            "discount_code": intent.discount_code,
        },
    )
    return intent


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
def get_intent(intent_id, as_of: datetime | None = None) -> OrderIntent:
    """Load an intent, expiring it first if its window has closed."""
    return lifecycle.normalize(lifecycle.load(intent_id), as_of)


def list_user_intents(user_id, status: str | None = None, as_of: datetime | None = None) -> list[OrderIntent]:
    if status is not None:
        try:
            IntentStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown status {status}"]}) from None

    repo = current_domain.repository_for(OrderIntent)
    intents = repo._dao.query.filter(user_id=str(user_id)).all().items
    intents = [lifecycle.normalize(intent, as_of) for intent in intents]
    if status is not None:
        intents = [intent for intent in intents if intent.status == status]
    return sorted(intents, key=lambda i: i.created_at, reverse=True)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------
def cancel_intent(intent_id, actor_id, is_admin: bool = False, as_of: datetime | None = None) -> OrderIntent:
    """Cancel an open intent and hand back its reservations.

    A cancel that arrives after the window closed finds the intent EXPIRED
    (normalization wins) and raises IntentExpired.
    """
    intent = get_intent(intent_id, as_of)
    if not is_admin and str(intent.user_id) != str(actor_id):
        raise Forbidden()
    if intent.intent_status == IntentStatus.EXPIRED:
        raise IntentExpired(str(intent.id))

    old_status = intent.status
    intent.cancel(actor_id)
    if not lifecycle.save(intent):
        current = lifecycle.load(intent_id)
        if current.intent_status == IntentStatus.EXPIRED:
            raise IntentExpired(str(current.id))
        raise IntentInvalidState(str(current.id), current.status, "cancel")

    released = lifecycle.release_holds(intent, reason="cancelled")
    logger.info("Order intent cancelled", intent_id=str(intent.id), actor_id=str(actor_id), locks_released=released)
    audit.record(
        "order_intent_cancelled",
        "order_intent",
        str(intent.id),
        actor_id=actor_id,
        old_values={"status": old_status},
        new_values={"status": intent.status},
    )
    return intent


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------
def initiate_payment(intent_id, as_of: datetime | None = None) -> PaymentSession:
    """Register the intent's total with the gateway, once.

    Retries return the gateway order recorded the first time.
    """
    intent = get_intent(intent_id, as_of)
    if intent.intent_status == IntentStatus.EXPIRED:
        raise IntentExpired(str(intent.id))
    if intent.intent_status != IntentStatus.INTENT_CREATED:
        raise IntentInvalidState(str(intent.id), intent.status, "start payment for")

    if not intent.gateway_order_id:
        gateway_order = get_gateway().create_gateway_order(
            amount_minor=to_minor_units(intent.total_amount),
            currency=intent.currency,
            reference=intent.intent_number,
        )
        intent.attach_gateway_order(gateway_order.gateway_order_id)
        if not lifecycle.save(intent):
            intent = lifecycle.load(intent_id)
            if not intent.gateway_order_id:
                raise IntentInvalidState(str(intent.id), intent.status, "start payment for")
        else:
            logger.info(
                "Payment initiated",
                intent_id=str(intent.id),
                gateway_order_id=intent.gateway_order_id,
                amount_minor=gateway_order.amount_minor,
            )

    return PaymentSession(
        intent_id=str(intent.id),
        intent_number=intent.intent_number,
        gateway_order_id=intent.gateway_order_id,
        amount_minor=to_minor_units(intent.total_amount),
        currency=intent.currency,
    )
