"""Cart revalidation — re-checks every cart line against the live catalog.

Carts are long-lived and the catalog keeps changing underneath them, so
before anything is reserved each line is checked for existence, active
flags, price drift and stock. All problems are collected and reported
together so the shopper can fix the cart in one pass.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ValidationError

from checkout.catalog import get_catalog
from checkout.errors import CartMismatch, LineMismatch
from checkout.inventory import ledger
from checkout.pricing.engine import PricedLine

logger = structlog.get_logger(__name__)

PRICE_TOLERANCE = 0.01


@dataclass(frozen=True)
class CartLine:
    """A cart line as supplied by the cart collaborator."""

    product_id: str
    quantity: int
    variant_id: str | None = None
    unit_price: float | None = None  # price the shopper saw


def validate_lines(lines: list[CartLine]) -> None:
    """Reject malformed input before the catalog is consulted."""
    errors = []
    if not lines:
        errors.append("Cart is empty")
    for index, line in enumerate(lines):
        if not line.product_id:
            errors.append(f"Line {index + 1}: product_id is required")
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
            errors.append(f"Line {index + 1}: quantity must be a positive integer")
    if errors:
        raise ValidationError({"items": errors})


def revalidate_cart(lines: list[CartLine], as_of: datetime | None = None) -> list[PricedLine]:
    catalog = get_catalog()
    mismatches = []
    priced = []
    requested = defaultdict(int)

    for line in lines:
        snapshot = catalog.get_product_and_variant(line.product_id, line.variant_id)
        priced_line = PricedLine(
            snapshot=snapshot,
            quantity=line.quantity,
            product_id=str(line.product_id),
            variant_id=str(line.variant_id) if line.variant_id else None,
        )
        target = str(priced_line.target)

        if snapshot.product is None:
            mismatches.append(LineMismatch(target=target, reason="not_found", message="Product no longer exists"))
            continue
        if line.variant_id and snapshot.variant is None:
            mismatches.append(LineMismatch(target=target, reason="not_found", message="Variant no longer exists"))
            continue
        if not snapshot.product.is_active:
            mismatches.append(
                LineMismatch(
                    target=target, reason="inactive", message=f"{snapshot.product.name} is no longer available"
                )
            )
        if snapshot.variant is not None and not snapshot.variant.is_active:
            mismatches.append(
                LineMismatch(
                    target=target, reason="inactive", message=f"Variant {snapshot.variant.sku} is no longer available"
                )
            )

        current_price = snapshot.catalog_price
        if line.unit_price is not None and current_price is not None:
            if abs(float(current_price) - float(line.unit_price)) > PRICE_TOLERANCE:
                mismatches.append(
                    LineMismatch(
                        target=target,
                        reason="price_changed",
                        message=f"Price changed from {line.unit_price} to {current_price}",
                        expected_price=float(line.unit_price),
                        current_price=float(current_price),
                    )
                )

        requested[priced_line.target] += line.quantity
        priced.append(priced_line)

    for target, quantity in requested.items():
        available = ledger.available_stock(target, as_of)
        if quantity > available:
            mismatches.append(
                LineMismatch(
                    target=str(target),
                    reason="insufficient_stock",
                    message=f"Only {max(available, 0)} available",
                    requested=quantity,
                    available=max(available, 0),
                )
            )

    if mismatches:
        logger.info("Cart revalidation failed", mismatches=len(mismatches))
        raise CartMismatch(mismatches)
    return priced
