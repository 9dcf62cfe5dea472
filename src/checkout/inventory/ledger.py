"""Inventory reservation ledger.

Owns the rule that locked units are always real units: stock is taken with
one atomic conditional decrement at the catalog ("decrement by N where
stock >= N"), and only then is the lock record written. If that write
fails, the decrement is undone before the error surfaces.

Lock transitions are compare-and-swap: the lock is re-read, its status
checked, and the write refused if a concurrent writer moved it first.
Only the writer that wins the LOCKED → RELEASED transition hands stock
back, and the restore is keyed by lock id at the catalog, so stock is
restored exactly once however many sweeps, cancels or expiries race for it.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout.catalog import get_catalog
from checkout.catalog.port import Target
from checkout.errors import InsufficientStock, InvalidLockState, LockNotFound
from checkout.inventory.lock import InventoryLock, LockStatus
from checkout.utils.store import persist, save_if_current

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3


def _repo():
    return current_domain.repository_for(InventoryLock)


def get_lock(lock_id) -> InventoryLock:
    try:
        return _repo().get(str(lock_id))
    except ObjectNotFoundError:
        raise LockNotFound(str(lock_id)) from None


# ---------------------------------------------------------------------------
# Reserve
# ---------------------------------------------------------------------------
def reserve(target: Target, quantity: int, intent_id, expires_at: datetime) -> InventoryLock:
    """Take ``quantity`` units of ``target`` for ``intent_id`` until ``expires_at``."""
    if not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

    catalog = get_catalog()
    if not catalog.conditional_adjust_stock(target, -quantity, require_floor_zero=True):
        available = catalog.get_stock(target)
        logger.info("Reservation refused", target=str(target), requested=quantity, available=available)
        raise InsufficientStock(str(target), quantity, available)

    lock = InventoryLock.create(target, quantity, intent_id, expires_at)
    try:
        persist(lock)
    except Exception:
        logger.exception("Failed to record inventory lock, restoring stock", target=str(target), quantity=quantity)
        catalog.conditional_adjust_stock(target, quantity, require_floor_zero=False, key=f"rollback:{lock.id}")
        raise

    logger.info(
        "Inventory locked",
        lock_id=str(lock.id),
        intent_id=str(intent_id),
        target=str(target),
        quantity=quantity,
        expires_at=expires_at.isoformat(),
    )
    return lock


# ---------------------------------------------------------------------------
# Release / convert
# ---------------------------------------------------------------------------
def release(lock_id, reason: str = "released") -> bool:
    """Hand a lock's units back to stock.

    Idempotent: returns False without touching stock when the lock is no
    longer LOCKED (already released, converted, or released by a concurrent
    caller that won the race).
    """
    for _ in range(MAX_ATTEMPTS):
        lock = get_lock(lock_id)
        if lock.lock_status != LockStatus.LOCKED:
            logger.debug("Release skipped", lock_id=str(lock_id), status=lock.status)
            return False

        lock.release(reason)
        if not save_if_current(lock):
            continue

        restored = get_catalog().conditional_adjust_stock(
            lock.target, lock.quantity_locked, require_floor_zero=False, key=f"release:{lock.id}"
        )
        if not restored:
            logger.warning("Stock for lock was already restored", lock_id=str(lock_id), target=str(lock.target))
        logger.info(
            "Inventory lock released",
            lock_id=str(lock_id),
            intent_id=str(lock.intent_id),
            target=str(lock.target),
            quantity=lock.quantity_locked,
            reason=reason,
        )
        return True
    return False


def convert(lock_id, order_id) -> bool:
    """Mark a lock as consumed by ``order_id``. Stock is not touched.

    Converting a lock already converted for the same order is a no-op.
    Raises InvalidLockState if the lock was released or belongs to another order.
    """
    for _ in range(MAX_ATTEMPTS):
        lock = get_lock(lock_id)
        if lock.lock_status == LockStatus.CONVERTED and str(lock.order_id) == str(order_id):
            return False

        lock.convert(order_id)
        if save_if_current(lock):
            logger.info("Inventory lock converted", lock_id=str(lock_id), order_id=str(order_id))
            return True

    lock = get_lock(lock_id)
    if lock.lock_status == LockStatus.CONVERTED and str(lock.order_id) == str(order_id):
        return False
    raise InvalidLockState(str(lock_id), lock.status, "convert")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def locks_for_intent(intent_id) -> list[InventoryLock]:
    return _repo()._dao.query.filter(intent_id=str(intent_id)).all().items


def active_locks(target: Target | None = None) -> list[InventoryLock]:
    criteria = {"status": LockStatus.LOCKED.value}
    if target is not None:
        criteria.update(target_kind=target.kind.value, target_id=target.id)
    return _repo()._dao.query.filter(**criteria).all().items


def lapsed_locks(as_of: datetime | None = None, target: Target | None = None) -> list[InventoryLock]:
    """LOCKED locks whose expiry has passed but have not been released yet."""
    as_of = as_of or datetime.now(UTC)
    return [lock for lock in active_locks(target) if lock.is_lapsed(as_of)]


def available_stock(target: Target, as_of: datetime | None = None) -> int:
    """Units a new checkout could get.

    Durable stock already excludes every LOCKED quantity, so lapsed locks
    are added back: their units count as available before a sweep has
    physically released them.
    """
    lapsed = sum(lock.quantity_locked for lock in lapsed_locks(as_of, target))
    return get_catalog().get_stock(target) + lapsed
