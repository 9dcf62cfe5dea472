"""Pricing/checkout settings port.

Settings are owned by an external admin surface. The checkout core only
reads them, one key at a time, through this interface.
"""

from abc import ABC, abstractmethod
from typing import Any


class SettingsSource(ABC):
    """Abstract key/value settings store."""

    @abstractmethod
    def get_setting(self, key: str) -> Any | None:
        """Return the raw stored value for ``key`` or None when unset."""
        ...


class InMemorySettings(SettingsSource):
    """Dict-backed settings store for development and testing."""

    def __init__(self, **values: Any) -> None:
        self._values: dict[str, Any] = dict(values)
        self.reads: int = 0

    def get_setting(self, key: str) -> Any | None:
        self.reads += 1
        return self._values.get(key)

    def update(self, **values: Any) -> None:
        self._values.update(values)

    def unset(self, key: str) -> None:
        self._values.pop(key, None)
