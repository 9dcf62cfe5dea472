"""Typed, cached access to checkout settings.

Raw values come from a SettingsSource and are coerced to the type declared
in SETTINGS. Each key is cached for ``ttl_seconds`` (60s by default) so a
burst of checkouts does not hammer the settings store.

A pricing computation must see one consistent view of configuration, so
callers take a ``snapshot()`` once and pass it through.
"""

import json
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable

import structlog

from checkout.config.port import SettingsSource

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 60


class RoundingMethod(Enum):
    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"


# key -> (type, default)
SETTINGS: dict[str, tuple[str, Any]] = {
    "tax_percentage": ("number", Decimal("18")),
    "free_shipping_threshold": ("number", Decimal("5000")),
    "shipping_charge": ("number", Decimal("0")),
    "price_rounding_method": ("string", RoundingMethod.ROUND.value),
    "inventory_lock_duration_minutes": ("number", Decimal("30")),
    "checkout_enabled": ("boolean", True),
    "maintenance_mode": ("boolean", False),
    "currency": ("string", "INR"),
    "pricing_rules": ("json", []),
}


@dataclass(frozen=True)
class PricingConfig:
    """Immutable configuration view used for one pricing computation."""

    tax_percentage: Decimal = Decimal("18")
    free_shipping_threshold: Decimal = Decimal("5000")
    shipping_charge: Decimal = Decimal("0")
    rounding_method: RoundingMethod = RoundingMethod.ROUND
    lock_duration_minutes: int = 30
    currency: str = "INR"
    pricing_rules: tuple = ()


def _coerce(kind: str, raw: Any, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    if kind == "number":
        try:
            return Decimal(str(raw))
        except (InvalidOperation, ValueError):
            logger.warning("Unparseable numeric setting, using default", raw=str(raw))
            return default
    if kind == "boolean":
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("true", "1", "yes", "on")
    if kind == "json":
        if isinstance(raw, (list, dict)):
            return raw
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Unparseable JSON setting, using default")
            return default
    return str(raw)


class ConfigService:
    def __init__(
        self,
        source: SettingsSource,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the typed value for ``key``, served from cache while fresh."""
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[0] < self.ttl_seconds:
            return cached[1]

        kind, declared_default = SETTINGS.get(key, ("string", None))
        fallback = declared_default if default is None else default
        value = _coerce(kind, self.source.get_setting(key), fallback)
        self._cache[key] = (now, value)
        return value

    def clear_cache(self, key: str | None = None) -> None:
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)

    def rounding_method(self) -> RoundingMethod:
        raw = self.get_setting("price_rounding_method")
        try:
            return RoundingMethod(str(raw).lower())
        except ValueError:
            logger.warning("Unknown rounding method, falling back to round", method=raw)
            return RoundingMethod.ROUND

    def lock_duration_minutes(self) -> int:
        minutes = int(self.get_setting("inventory_lock_duration_minutes"))
        return minutes if minutes > 0 else 30

    def is_checkout_enabled(self) -> bool:
        return bool(self.get_setting("checkout_enabled")) and not bool(self.get_setting("maintenance_mode"))

    def unavailable_reason(self) -> str | None:
        """Why checkout is closed, or None when it is open."""
        if self.get_setting("maintenance_mode"):
            return "Checkout is temporarily unavailable due to maintenance"
        if not self.get_setting("checkout_enabled"):
            return "Checkout is currently disabled"
        return None

    def snapshot(self) -> PricingConfig:
        rules = self.get_setting("pricing_rules") or []
        return PricingConfig(
            tax_percentage=self.get_setting("tax_percentage"),
            free_shipping_threshold=self.get_setting("free_shipping_threshold"),
            shipping_charge=self.get_setting("shipping_charge"),
            rounding_method=self.rounding_method(),
            lock_duration_minutes=self.lock_duration_minutes(),
            currency=self.get_setting("currency"),
            pricing_rules=tuple(rules),
        )
