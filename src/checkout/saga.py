"""Compensating-action stack for multi-step checkout operations.

Each step that succeeds pushes the action that undoes it. On failure the
stack is unwound in reverse order. A compensator that itself fails is logged
and recorded, and unwinding carries on with the remaining entries.

Usage:
    with CompensationStack("create_intent", intent_id=intent_id) as saga:
        lock = ledger.reserve(...)
        saga.push("release_lock", ledger.release, lock.id, "rollback")
        ...
        saga.discard()  # committed: nothing to undo
"""

from dataclasses import dataclass
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class Compensator:
    name: str
    action: Callable[..., Any]
    args: tuple = ()


class CompensationStack:
    def __init__(self, operation: str, **context):
        self.operation = operation
        self.context = context
        self._entries: list[Compensator] = []
        self.failed: list[str] = []

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, name: str, action: Callable[..., Any], *args) -> None:
        """Record how to undo a step that just succeeded."""
        self._entries.append(Compensator(name=name, action=action, args=args))

    def discard(self) -> None:
        """Forget all recorded compensators once the operation has committed."""
        self._entries.clear()

    def unwind(self) -> list[str]:
        """Run compensators in reverse. Returns the names of those that failed."""
        while self._entries:
            entry = self._entries.pop()
            try:
                entry.action(*entry.args)
            except Exception:
                self.failed.append(entry.name)
                logger.exception(
                    "Compensation step failed",
                    operation=self.operation,
                    step=entry.name,
                    **self.context,
                )
        if self.failed:
            logger.warning(
                "Rollback incomplete, manual reconciliation required",
                operation=self.operation,
                failed_steps=self.failed,
                **self.context,
            )
        return self.failed

    def __enter__(self) -> "CompensationStack":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self._entries:
            logger.info(
                "Rolling back",
                operation=self.operation,
                steps=[e.name for e in reversed(self._entries)],
                error=str(exc),
                **self.context,
            )
            self.unwind()
            if self.failed and hasattr(exc, "details") and isinstance(exc.details, dict):
                exc.details["rollback_failed_steps"] = list(self.failed)
        return False
