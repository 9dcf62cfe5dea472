"""Catalog/inventory collaborator port.

The checkout core never writes stock directly. Every change goes through
``conditional_adjust_stock``, which adapters must implement as a single
atomic compare-and-swap against their backing store, e.g.
``UPDATE stock SET qty = qty + :delta WHERE id = :id AND qty + :delta >= 0``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class TargetKind(Enum):
    PRODUCT = "product"
    VARIANT = "variant"


@dataclass(frozen=True)
class Target:
    """What a reservation holds stock against: a variant, or a product without variants."""

    kind: TargetKind
    id: str

    @classmethod
    def for_line(cls, product_id: str, variant_id: str | None = None) -> "Target":
        if variant_id:
            return cls(TargetKind.VARIANT, str(variant_id))
        return cls(TargetKind.PRODUCT, str(product_id))

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.kind.value, self.id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass(frozen=True)
class ProductInfo:
    id: str
    name: str
    base_price: float
    is_active: bool = True
    category: str | None = None
    metal_type: str | None = None
    weight: float | None = None


@dataclass(frozen=True)
class VariantInfo:
    id: str
    product_id: str
    sku: str
    base_price: float | None = None
    price_override: float | None = None
    size: str | None = None
    color: str | None = None
    finish: str | None = None
    weight: float | None = None
    is_active: bool = True


@dataclass(frozen=True)
class CatalogSnapshot:
    """Resolved product (and variant) data for one cart line."""

    product: ProductInfo | None
    variant: VariantInfo | None = None

    @property
    def catalog_price(self) -> float | None:
        """Variant override, then variant base, then product base."""
        if self.variant is not None:
            if self.variant.price_override is not None:
                return self.variant.price_override
            if self.variant.base_price is not None:
                return self.variant.base_price
        if self.product is not None:
            return self.product.base_price
        return None

    @property
    def weight(self) -> float | None:
        if self.variant is not None and self.variant.weight is not None:
            return self.variant.weight
        return self.product.weight if self.product is not None else None


class Catalog(ABC):
    """Abstract catalog/inventory interface."""

    @abstractmethod
    def get_stock(self, target: Target) -> int:
        """Current durable stock for the target (0 when unknown)."""
        ...

    @abstractmethod
    def conditional_adjust_stock(
        self, target: Target, delta: int, require_floor_zero: bool = True, key: str | None = None
    ) -> bool:
        """Atomically add ``delta`` to stock. Fails without change if the floor would be crossed.

        An adjustment carrying a ``key`` that was already applied is refused,
        so retried restores land once.
        """
        ...

    @abstractmethod
    def get_product_and_variant(self, product_id: str, variant_id: str | None = None) -> CatalogSnapshot:
        """Resolve product and variant records. Missing records come back as None."""
        ...
