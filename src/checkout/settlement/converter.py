"""Settlement converter — turns a paid OrderIntent into exactly one Order.

Conversion is a claim followed by idempotent completion steps:

1. Claim: INTENT_CREATED → CONVERTED on the intent row (compare-and-swap).
   The claim races expiry and cancellation; whichever terminal transition
   lands first is final.
2. Materialize the Order under the id derived from the intent id.
3. Mark every lock CONVERTED (stock was taken at reservation time).
4. Redeem the discount: count one use for this intent and drop its lock.

Every step checks what is already done before acting, so a retry after a
crash anywhere past the claim simply resumes and finishes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout import audit
from checkout.discount import coordinator
from checkout.errors import IntentExpired, IntentInvalidState, PaymentSignatureMismatch
from checkout.gateway import get_gateway
from checkout.intent import lifecycle
from checkout.intent.intent import IntentStatus, OrderIntent
from checkout.inventory import ledger
from checkout.inventory.lock import LockStatus
from checkout.pricing.engine import to_minor_units
from checkout.settlement.order import Order, order_id_for
from checkout.utils.store import persist

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentProof:
    """Evidence that the shopper paid for an intent.

    ``pre_verified`` is set by the webhook path, whose envelope signature
    already authenticated the gateway.
    """

    gateway_order_id: str
    payment_id: str
    signature: str | None = None
    amount_minor: int | None = None
    pre_verified: bool = False


def find_order_for_intent(intent_id) -> Order | None:
    try:
        return current_domain.repository_for(Order).get(order_id_for(intent_id))
    except ObjectNotFoundError:
        return None


def _verify(intent: OrderIntent, proof: PaymentProof) -> None:
    if not intent.gateway_order_id or proof.gateway_order_id != intent.gateway_order_id:
        logger.warning("Payment proof is for a different gateway order", intent_id=str(intent.id))
        raise PaymentSignatureMismatch()
    if not proof.pre_verified:
        if not proof.signature or not get_gateway().verify_signature(
            proof.gateway_order_id, proof.payment_id, proof.signature
        ):
            logger.warning("Payment signature rejected", intent_id=str(intent.id))
            raise PaymentSignatureMismatch()
    if proof.amount_minor is not None and proof.amount_minor != to_minor_units(intent.total_amount):
        logger.warning(
            "Paid amount does not match intent total",
            intent_id=str(intent.id),
            paid=proof.amount_minor,
            expected=to_minor_units(intent.total_amount),
        )
        raise PaymentSignatureMismatch()


def _materialize(intent: OrderIntent, as_of: datetime) -> tuple[Order, bool]:
    """Write the Order for a claimed intent. Returns (order, created)."""
    existing = find_order_for_intent(intent.id)
    if existing is not None:
        return existing, False

    order = Order.place(intent, now=as_of)
    try:
        persist(order)
    except (ExpectedVersionError, ValidationError):
        # A concurrent settlement wrote it first.
        existing = find_order_for_intent(intent.id)
        if existing is None:
            raise
        return existing, False
    return order, True


def _complete(intent: OrderIntent, order: Order) -> None:
    """Finish the lock and discount steps. Safe to repeat."""
    for lock in ledger.locks_for_intent(intent.id):
        if lock.lock_status == LockStatus.LOCKED:
            ledger.convert(lock.id, order.id)
        elif lock.lock_status == LockStatus.RELEASED:
            logger.error(
                "Lock of a converted intent was released",
                lock_id=str(lock.id),
                intent_id=str(intent.id),
                order_id=str(order.id),
            )

    if intent.discount_id:
        coordinator.redeem(intent.discount_id, intent.id)


def _resume(intent: OrderIntent, as_of: datetime) -> Order:
    order, created = _materialize(intent, as_of)
    _complete(intent, order)
    if created:
        logger.info(
            "Order created from intent",
            order_id=str(order.id),
            order_number=order.order_number,
            intent_id=str(intent.id),
            total=order.total_amount,
        )
        audit.record(
            "order_created_from_intent",
            "order",
            str(order.id),
            actor_id=intent.user_id,
            old_values={"order_intent_id": str(intent.id), "status": IntentStatus.INTENT_CREATED.value},
            new_values={"status": order.status, "payment_status": order.payment_status},
        )
    return order


def convert(intent_id, proof: PaymentProof, as_of: datetime | None = None) -> Order:
    """Settle ``intent_id``. Returns the one Order for it, creating it if needed."""
    as_of = as_of or datetime.now(UTC)
    intent = lifecycle.load(intent_id)

    existing = find_order_for_intent(intent.id)
    if existing is not None:
        if intent.intent_status == IntentStatus.CONVERTED:
            _complete(intent, existing)
        logger.debug("Intent already settled", intent_id=str(intent.id), order_id=str(existing.id))
        return existing

    if intent.intent_status == IntentStatus.CONVERTED:
        logger.info("Resuming interrupted settlement", intent_id=str(intent.id))
        return _resume(intent, as_of)

    if intent.is_lapsed(as_of):
        lifecycle.expire_intent(intent.id, as_of)
        raise IntentExpired(str(intent.id))
    if intent.intent_status == IntentStatus.EXPIRED:
        raise IntentExpired(str(intent.id))
    if intent.intent_status != IntentStatus.INTENT_CREATED:
        raise IntentInvalidState(str(intent.id), intent.status, "convert")

    _verify(intent, proof)

    intent.mark_converted(order_id_for(intent.id), proof.payment_id)
    if not lifecycle.save(intent):
        current = lifecycle.load(intent_id)
        if current.intent_status == IntentStatus.CONVERTED:
            return _resume(current, as_of)
        if current.intent_status == IntentStatus.EXPIRED:
            raise IntentExpired(str(current.id))
        raise IntentInvalidState(str(current.id), current.status, "convert")

    return _resume(intent, as_of)
