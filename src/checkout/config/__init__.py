"""Checkout configuration factory.

Provides get_config() / set_config() to swap the settings backing store:
- InMemorySettings for development and testing
- any SettingsSource adapter over the admin settings table in production
"""

from checkout.config.port import InMemorySettings, SettingsSource
from checkout.config.service import ConfigService, PricingConfig

_current_config: ConfigService | None = None


def get_config() -> ConfigService:
    """Return the active configuration service. Defaults to empty in-memory settings."""
    global _current_config
    if _current_config is None:
        _current_config = ConfigService(InMemorySettings())
    return _current_config


def set_config(config: ConfigService | SettingsSource) -> ConfigService:
    """Override the active configuration (useful for tests)."""
    global _current_config
    if isinstance(config, SettingsSource):
        config = ConfigService(config)
    _current_config = config
    return config


def reset_config() -> None:
    """Reset to default configuration."""
    global _current_config
    _current_config = None


__all__ = [
    "ConfigService",
    "InMemorySettings",
    "PricingConfig",
    "SettingsSource",
    "get_config",
    "reset_config",
    "set_config",
]
