"""Terminal transitions shared by every path that can end an intent.

Read-time normalization, explicit cancellation, the reaper and settlement
all race for the same INTENT_CREATED intent. Each of them persists its
transition as a compare-and-swap on the intent row and only the winner
goes on to release holds, so locks and the discount lock are handed back
exactly once.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout import audit
from checkout.discount import coordinator
from checkout.errors import IntentNotFound
from checkout.intent.intent import IntentStatus, OrderIntent
from checkout.inventory import ledger
from checkout.inventory.lock import InventoryLock, LockStatus
from checkout.utils.store import save_if_current

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3


def load(intent_id) -> OrderIntent:
    try:
        return current_domain.repository_for(OrderIntent).get(str(intent_id))
    except ObjectNotFoundError:
        raise IntentNotFound(str(intent_id)) from None


def find(intent_id) -> OrderIntent | None:
    try:
        return current_domain.repository_for(OrderIntent).get(str(intent_id))
    except ObjectNotFoundError:
        return None


def save(intent: OrderIntent) -> bool:
    """Persist, returning False when a concurrent writer won the race."""
    if not save_if_current(intent):
        logger.info("Intent write lost a race", intent_id=str(intent.id))
        return False
    return True


def release_holds(intent: OrderIntent, reason: str) -> int:
    """Hand back every lock and the discount lock held by a terminated intent.

    Failures are logged and left for the reaper, which finishes any lock
    still LOCKED under a terminal intent.
    """
    released = 0
    for lock in ledger.locks_for_intent(intent.id):
        if lock.lock_status != LockStatus.LOCKED:
            continue
        try:
            if ledger.release(lock.id, reason):
                released += 1
        except Exception:
            logger.exception("Could not release lock, leaving it for the reaper", lock_id=str(lock.id))

    if intent.discount_id:
        try:
            coordinator.unlock(intent.discount_id, intent.id, reason=reason)
        except Exception:
            logger.exception(
                "Could not unlock discount, leaving it for the reaper", discount_id=str(intent.discount_id)
            )
    return released


def expire_intent(intent_id, as_of: datetime | None = None) -> OrderIntent:
    """Flip a lapsed INTENT_CREATED intent to EXPIRED and release its holds.

    Safe to call from any number of readers at once: exactly one wins the
    transition and releases. Returns the intent as it stands afterwards.
    """
    as_of = as_of or datetime.now(UTC)
    for _ in range(MAX_ATTEMPTS):
        intent = load(intent_id)
        if not intent.is_lapsed(as_of):
            return intent

        intent.expire()
        if not save(intent):
            continue

        released = release_holds(intent, reason="expired")
        logger.info("Order intent expired", intent_id=str(intent.id), locks_released=released)
        audit.record(
            "order_intent_expired",
            "order_intent",
            str(intent.id),
            actor_id=None,
            old_values={"status": IntentStatus.INTENT_CREATED.value},
            new_values={"status": IntentStatus.EXPIRED.value, "locks_released": released},
        )
        return intent
    return load(intent_id)


def normalize(intent: OrderIntent, as_of: datetime | None = None) -> OrderIntent:
    """Return ``intent`` as every reader must see it: lapsed means EXPIRED."""
    as_of = as_of or datetime.now(UTC)
    if intent.is_lapsed(as_of):
        return expire_intent(intent.id, as_of)
    return intent


def settle_stray_lock(lock: InventoryLock, as_of: datetime) -> str | None:
    """Finish a LOCKED lock according to its owning intent.

    Returns "released", "converted", "expired" (intent expired, holds
    released) or None when the lock is legitimately still held.
    """
    intent = find(lock.intent_id)
    if intent is None:
        if lock.is_lapsed(as_of) and ledger.release(lock.id, "orphaned"):
            logger.warning("Released orphaned lock", lock_id=str(lock.id), intent_id=str(lock.intent_id))
            return "released"
        return None

    status = intent.intent_status
    if status == IntentStatus.INTENT_CREATED:
        if intent.is_lapsed(as_of):
            expire_intent(intent.id, as_of)
            return "expired"
        return None
    if status in (IntentStatus.EXPIRED, IntentStatus.CANCELLED):
        return "released" if ledger.release(lock.id, status.value.lower()) else None
    if status == IntentStatus.CONVERTED and intent.order_id:
        return "converted" if ledger.convert(lock.id, intent.order_id) else None
    return None
