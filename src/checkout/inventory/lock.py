"""InventoryLock aggregate (CQRS) — N units of one target reserved for one order intent.

State Machine:
    LOCKED → RELEASED   (cancel, expiry, rollback)
    LOCKED → CONVERTED  (intent settled into an order)

Both outcomes are terminal and mutually exclusive. Stock is removed from the
catalog before the lock is recorded and is only ever handed back by a
successful LOCKED → RELEASED transition.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from checkout.catalog.port import Target, TargetKind
from checkout.domain import checkout
from checkout.errors import InvalidLockState
from checkout.inventory.events import InventoryLockConverted, InventoryLocked, InventoryLockReleased
from checkout.utils.clock import as_utc


class LockStatus(Enum):
    LOCKED = "LOCKED"
    RELEASED = "RELEASED"
    CONVERTED = "CONVERTED"


_VALID_TRANSITIONS = {
    LockStatus.LOCKED: {LockStatus.RELEASED, LockStatus.CONVERTED},
    LockStatus.RELEASED: set(),  # Terminal
    LockStatus.CONVERTED: set(),  # Terminal
}


def can_transition(current: LockStatus, target: LockStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


@checkout.aggregate
class InventoryLock:
    intent_id = Identifier(required=True)
    target_kind = String(choices=TargetKind, required=True)
    target_id = Identifier(required=True)
    quantity_locked = Integer(required=True, min_value=1)
    status = String(choices=LockStatus, default=LockStatus.LOCKED.value)
    expires_at = DateTime(required=True)
    order_id = Identifier()
    release_reason = String(max_length=50)
    locked_at = DateTime()
    released_at = DateTime()
    converted_at = DateTime()

    @classmethod
    def create(cls, target: Target, quantity: int, intent_id, expires_at: datetime):
        lock = cls(
            intent_id=str(intent_id),
            target_kind=target.kind.value,
            target_id=target.id,
            quantity_locked=quantity,
            status=LockStatus.LOCKED.value,
            expires_at=expires_at,
            locked_at=datetime.now(UTC),
        )
        lock.raise_(
            InventoryLocked(
                lock_id=str(lock.id),
                intent_id=str(intent_id),
                target_kind=target.kind.value,
                target_id=target.id,
                quantity=quantity,
                expires_at=expires_at,
            )
        )
        return lock

    @property
    def target(self) -> Target:
        return Target(TargetKind(self.target_kind), str(self.target_id))

    @property
    def lock_status(self) -> LockStatus:
        return LockStatus(self.status)

    def is_lapsed(self, as_of: datetime) -> bool:
        return self.lock_status == LockStatus.LOCKED and as_utc(self.expires_at) <= as_of

    def _assert_can_transition(self, target_status: LockStatus, action: str) -> None:
        if not can_transition(self.lock_status, target_status):
            raise InvalidLockState(str(self.id), self.status, action)

    def release(self, reason: str) -> None:
        self._assert_can_transition(LockStatus.RELEASED, "release")
        self.status = LockStatus.RELEASED.value
        self.release_reason = reason
        self.released_at = datetime.now(UTC)
        self.raise_(
            InventoryLockReleased(
                lock_id=str(self.id),
                intent_id=str(self.intent_id),
                target_kind=self.target_kind,
                target_id=str(self.target_id),
                quantity=self.quantity_locked,
                reason=reason,
            )
        )

    def convert(self, order_id) -> None:
        self._assert_can_transition(LockStatus.CONVERTED, "convert")
        self.status = LockStatus.CONVERTED.value
        self.order_id = str(order_id)
        self.converted_at = datetime.now(UTC)
        self.raise_(
            InventoryLockConverted(
                lock_id=str(self.id),
                intent_id=str(self.intent_id),
                order_id=str(order_id),
                quantity=self.quantity_locked,
            )
        )
