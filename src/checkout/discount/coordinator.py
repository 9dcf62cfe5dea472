"""Discount lock coordinator.

Grants one checkout at a time the exclusive right to a discount code, and
counts a use exactly once when that checkout settles. Every write is a
compare-and-swap on the discount row: the aggregate is re-read, the
condition re-checked, and the write refused if another writer got there
first.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout import audit
from checkout.discount.discount import Discount
from checkout.errors import DiscountInvalid
from checkout.utils.clock import as_utc
from checkout.utils.store import persist, save_if_current

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3
IN_USE = "Discount code is in use by another checkout"


def _load(discount_id) -> Discount:
    try:
        return current_domain.repository_for(Discount).get(str(discount_id))
    except ObjectNotFoundError:
        raise DiscountInvalid(None, ["Invalid discount code"]) from None


def lock(discount_id, intent_id, until: datetime, as_of: datetime | None = None) -> Discount:
    """Take the code for ``intent_id`` until ``until``.

    Re-locking by the holder is a no-op. Raises DiscountInvalid when the
    code is inactive, used up, or held by another unexpired checkout.
    """
    as_of = as_of or datetime.now(UTC)
    for _ in range(MAX_ATTEMPTS):
        discount = _load(discount_id)

        reasons = []
        if not discount.is_active:
            reasons.append("Discount code is not active")
        if discount.usage_exhausted:
            reasons.append("Discount code usage limit reached")
        if discount.lock_held_by_other(intent_id, as_of):
            reasons.append(IN_USE)
        if reasons:
            raise DiscountInvalid(discount.code, reasons)

        if discount.locked_by_intent_id and str(discount.locked_by_intent_id) == str(intent_id):
            return discount

        discount.acquire_lock(intent_id, until)
        if save_if_current(discount):
            logger.info("Discount locked", code=discount.code, intent_id=str(intent_id), until=until.isoformat())
            return discount
        logger.info("Discount write lost a race", discount_id=str(discount_id), intent_id=str(intent_id))

    raise DiscountInvalid(discount.code, [IN_USE])


def unlock(discount_id, intent_id, reason: str = "released") -> bool:
    """Release the code if, and only if, ``intent_id`` holds it."""
    for _ in range(MAX_ATTEMPTS):
        discount = _load(discount_id)
        if str(discount.locked_by_intent_id or "") != str(intent_id):
            return False
        discount.release_lock(reason)
        if save_if_current(discount):
            logger.info("Discount unlocked", code=discount.code, intent_id=str(intent_id), reason=reason)
            return True
    logger.warning("Gave up unlocking discount after repeated conflicts", discount_id=str(discount_id))
    return False


def redeem(discount_id, intent_id) -> bool:
    """Count one use for ``intent_id`` and drop its lock. Idempotent per intent."""
    last_error = None
    for _ in range(MAX_ATTEMPTS):
        discount = _load(discount_id)
        if str(intent_id) in discount.redeemed_by:
            if str(discount.locked_by_intent_id or "") == str(intent_id):
                unlock(discount_id, intent_id, reason="redeemed")
            return False

        discount.redeem(intent_id)
        if str(discount.locked_by_intent_id or "") == str(intent_id):
            discount.release_lock("redeemed")
        try:
            persist(discount)
        except ExpectedVersionError as exc:
            last_error = exc
            continue

        logger.info("Discount redeemed", code=discount.code, intent_id=str(intent_id), used_count=discount.used_count)
        return True

    raise last_error


def clear_stale_locks(as_of: datetime | None = None) -> int:
    """Drop locks whose ``locked_until`` has passed. Returns how many were cleared."""
    as_of = as_of or datetime.now(UTC)
    repo = current_domain.repository_for(Discount)
    held = [d for d in repo._dao.query.all().items if d.locked_by_intent_id]

    cleared = 0
    for discount in held:
        if discount.locked_until is not None and as_utc(discount.locked_until) > as_of:
            continue
        holder = str(discount.locked_by_intent_id)
        if unlock(discount.id, holder, reason="expired"):
            cleared += 1
            audit.record(
                "discount_lock_cleared",
                "discount",
                str(discount.id),
                old_values={"locked_by_intent_id": holder},
                new_values={"locked_by_intent_id": None},
            )
    return cleared
