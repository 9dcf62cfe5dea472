"""Audit sink port — an append-only log of checkout state changes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class AuditEntry:
    action: str
    entity_type: str
    entity_id: str
    actor_id: str | None = None
    old_values: dict | None = None
    new_values: dict | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class AuditSink(ABC):
    """Abstract audit log interface. Implementations only ever append."""

    @abstractmethod
    def record(self, entry: AuditEntry) -> None: ...


class InMemoryAuditSink(AuditSink):
    """Collects entries in a list. ``fail`` simulates an unavailable store."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []
        self.fail: bool = False

    def record(self, entry: AuditEntry) -> None:
        if self.fail:
            raise ConnectionError("Audit store unavailable")
        self.entries.append(entry)

    def actions(self) -> list[str]:
        return [e.action for e in self.entries]
