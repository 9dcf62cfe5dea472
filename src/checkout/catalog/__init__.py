"""Catalog collaborator factory.

Provides get_catalog() / set_catalog() to swap implementations:
- InMemoryCatalog for development and testing
- a database-backed adapter using conditional updates in production
"""

from checkout.catalog.memory_adapter import InMemoryCatalog
from checkout.catalog.port import Catalog, CatalogSnapshot, Target, TargetKind

_current_catalog: Catalog | None = None


def get_catalog() -> Catalog:
    """Return the current catalog. Defaults to an empty InMemoryCatalog."""
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryCatalog()
    return _current_catalog


def set_catalog(catalog: Catalog) -> None:
    """Override the active catalog (useful for tests)."""
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    """Reset to default catalog."""
    global _current_catalog
    _current_catalog = None


__all__ = [
    "Catalog",
    "CatalogSnapshot",
    "InMemoryCatalog",
    "Target",
    "TargetKind",
    "get_catalog",
    "reset_catalog",
    "set_catalog",
]
