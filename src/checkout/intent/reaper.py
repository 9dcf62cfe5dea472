"""Expiry reaper.

Finds intents whose window has closed and locks left LOCKED behind, and
settles each one through the same compare-and-swap transitions the request
paths use. Running it twice, or alongside a cancel or a settlement, hands
back every unit exactly once.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from protean.utils.globals import current_domain

from checkout import audit
from checkout.catalog.port import Target
from checkout.discount import coordinator
from checkout.intent import lifecycle
from checkout.intent.intent import IntentStatus, OrderIntent
from checkout.inventory import ledger

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    intents_expired: int = 0
    locks_released: int = 0
    locks_converted: int = 0
    discount_locks_cleared: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "intents_expired": self.intents_expired,
            "locks_released": self.locks_released,
            "locks_converted": self.locks_converted,
            "discount_locks_cleared": self.discount_locks_cleared,
            "errors": list(self.errors),
        }


def _lapsed_intents(as_of: datetime) -> list[OrderIntent]:
    repo = current_domain.repository_for(OrderIntent)
    open_intents = repo._dao.query.filter(status=IntentStatus.INTENT_CREATED.value).all().items
    return [intent for intent in open_intents if intent.is_lapsed(as_of)]


def sweep(as_of: datetime | None = None) -> SweepReport:
    """One pass over everything that should no longer be held."""
    as_of = as_of or datetime.now(UTC)
    report = SweepReport()

    for intent in _lapsed_intents(as_of):
        try:
            expired = lifecycle.expire_intent(intent.id, as_of)
        except Exception as exc:
            logger.exception("Failed to expire intent", intent_id=str(intent.id))
            report.errors.append(f"intent {intent.id}: {exc}")
            continue
        if expired.intent_status == IntentStatus.EXPIRED:
            report.intents_expired += 1

    for lock in ledger.active_locks():
        try:
            outcome = lifecycle.settle_stray_lock(lock, as_of)
        except Exception as exc:
            logger.exception("Failed to settle lock", lock_id=str(lock.id))
            report.errors.append(f"lock {lock.id}: {exc}")
            continue
        if outcome == "released":
            report.locks_released += 1
            audit.record(
                "inventory_lock_released",
                "inventory_lock",
                str(lock.id),
                old_values={"status": "LOCKED"},
                new_values={"status": "RELEASED", "intent_id": str(lock.intent_id)},
                notes="released by sweep",
            )
        elif outcome == "converted":
            report.locks_converted += 1
        elif outcome == "expired":
            report.intents_expired += 1

    report.discount_locks_cleared = coordinator.clear_stale_locks(as_of)

    logger.info("Reservation sweep finished", as_of=as_of.isoformat(), **report.to_dict())
    return report


def reclaim_lapsed(targets: set[Target], as_of: datetime) -> int:
    """Settle lapsed locks on ``targets`` before a new checkout reserves them.

    Lapsed units already count as available, so the reservation's
    conditional decrement needs them physically back in stock.
    """
    settled = 0
    for target in sorted(targets, key=lambda t: t.sort_key):
        for lock in ledger.lapsed_locks(as_of, target):
            if lifecycle.settle_stray_lock(lock, as_of):
                settled += 1
    if settled:
        logger.info("Reclaimed lapsed reservations", targets=len(targets), settled=settled)
    return settled
