"""In-process catalog for development and testing.

Stock counters are shared across request threads, so every read-modify-write
happens under one lock to give ``conditional_adjust_stock`` the same atomic
compare-and-swap behaviour a conditional SQL update would.
"""

import threading
from dataclasses import replace

from checkout.catalog.port import (
    Catalog,
    CatalogSnapshot,
    ProductInfo,
    Target,
    TargetKind,
    VariantInfo,
)


class InMemoryCatalog(Catalog):
    def __init__(self) -> None:
        self._products: dict[str, ProductInfo] = {}
        self._variants: dict[str, VariantInfo] = {}
        self._stock: dict[Target, int] = {}
        self._lock = threading.Lock()
        self._applied_keys: set[str] = set()
        self.adjustments: list[tuple[Target, int, bool]] = []
        self.fail_on: set[Target] = set()

    # -------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------
    def add_product(
        self, product_id: str, name: str, base_price: float, stock: int | None = None, **attrs
    ) -> ProductInfo:
        product = ProductInfo(id=str(product_id), name=name, base_price=base_price, **attrs)
        self._products[product.id] = product
        if stock is not None:
            self.set_stock(Target(TargetKind.PRODUCT, product.id), stock)
        return product

    def add_variant(self, variant_id: str, product_id: str, sku: str, stock: int | None = None, **attrs) -> VariantInfo:
        variant = VariantInfo(id=str(variant_id), product_id=str(product_id), sku=sku, **attrs)
        self._variants[variant.id] = variant
        if stock is not None:
            self.set_stock(Target(TargetKind.VARIANT, variant.id), stock)
        return variant

    def update_product(self, product_id: str, **changes) -> None:
        self._products[product_id] = replace(self._products[product_id], **changes)

    def update_variant(self, variant_id: str, **changes) -> None:
        self._variants[variant_id] = replace(self._variants[variant_id], **changes)

    def set_stock(self, target: Target, quantity: int) -> None:
        """Administrative overwrite, outside of any checkout flow."""
        with self._lock:
            self._stock[target] = quantity

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def get_stock(self, target: Target) -> int:
        with self._lock:
            return self._stock.get(target, 0)

    def conditional_adjust_stock(
        self, target: Target, delta: int, require_floor_zero: bool = True, key: str | None = None
    ) -> bool:
        with self._lock:
            if target in self.fail_on:
                raise ConnectionError(f"Catalog store unavailable for {target}")
            if key is not None and key in self._applied_keys:
                return False
            current = self._stock.get(target, 0)
            if require_floor_zero and current + delta < 0:
                return False
            self._stock[target] = current + delta
            if key is not None:
                self._applied_keys.add(key)
            self.adjustments.append((target, delta, require_floor_zero))
            return True

    def get_product_and_variant(self, product_id: str, variant_id: str | None = None) -> CatalogSnapshot:
        variant = self._variants.get(str(variant_id)) if variant_id else None
        product = self._products.get(str(product_id))
        if variant is not None and variant.product_id != str(product_id):
            variant = None
        return CatalogSnapshot(product=product, variant=variant)
