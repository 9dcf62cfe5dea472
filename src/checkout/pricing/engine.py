"""Pricing engine — the authoritative price for a checkout.

All arithmetic is done in Decimal and the configured rounding method is
applied to every intermediate monetary value (unit price, line total,
subtotal, discount, tax, shipping, total). Identical lines, discount and
configuration therefore always produce identical totals.

    subtotal  = sum(rounded(unit price after rules) * quantity)
    discount  = min(percentage or flat amount, subtotal)
    taxable   = subtotal - discount
    tax       = rounded(taxable * tax_percentage / 100)
    shipping  = 0 if taxable >= free_shipping_threshold else shipping_charge
    total     = rounded(taxable + tax + shipping)
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable

import structlog
from protean.exceptions import ValidationError

from checkout.catalog.port import CatalogSnapshot, Target
from checkout.config import get_config
from checkout.config.service import PricingConfig, RoundingMethod
from checkout.errors import DiscountInvalid
from checkout.pricing.rules import apply_rules, parse_rules
from checkout.utils.clock import as_utc

logger = structlog.get_logger(__name__)

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def round_money(amount: Decimal, method: RoundingMethod = RoundingMethod.ROUND) -> Decimal:
    """Round per the configured method. floor/ceil go to whole units, round to cents."""
    if method is RoundingMethod.FLOOR:
        return amount.to_integral_value(rounding=ROUND_FLOOR).quantize(_CENT)
    if method is RoundingMethod.CEIL:
        return amount.to_integral_value(rounding=ROUND_CEILING).quantize(_CENT)
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_minor_units(amount: Decimal | float) -> int:
    """Amount in the currency's minor unit (paise, cents)."""
    return int((to_decimal(amount) * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class DiscountTerms:
    """What the pricing engine needs to know about a discount code."""

    id: str
    code: str
    discount_type: str  # percentage | flat
    value: Decimal
    min_cart_value: Decimal = _ZERO
    max_uses: int | None = None
    used_count: int = 0
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None

    def problems(self, subtotal: Decimal, as_of: datetime) -> list[str]:
        """Every reason this discount cannot apply to ``subtotal`` right now."""
        reasons = []
        if not self.is_active:
            reasons.append("Discount code is not active")
        if self.valid_from is not None and as_utc(self.valid_from) > as_of:
            reasons.append("Discount code is not yet valid")
        if self.valid_until is not None and as_utc(self.valid_until) < as_of:
            reasons.append("Discount code has expired")
        if self.min_cart_value and subtotal < self.min_cart_value:
            reasons.append(f"Minimum cart value of {self.min_cart_value} required")
        if self.max_uses is not None and self.used_count >= self.max_uses:
            reasons.append("Discount code usage limit reached")
        return reasons

    def amount_for(self, subtotal: Decimal) -> Decimal:
        if self.discount_type == "percentage":
            amount = subtotal * self.value / _HUNDRED
        else:
            amount = self.value
        return min(amount, subtotal)


@dataclass(frozen=True)
class PricedLine:
    """A cart line resolved against the catalog, ready to be priced."""

    snapshot: CatalogSnapshot
    quantity: int
    product_id: str
    variant_id: str | None = None

    @property
    def target(self) -> Target:
        return Target.for_line(self.product_id, self.variant_id)


@dataclass(frozen=True)
class QuotedLine:
    target: Target
    product_id: str
    variant_id: str | None
    quantity: int
    base_price: Decimal
    unit_price: Decimal
    line_total: Decimal
    applied_rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal
    currency: str
    lines: tuple[QuotedLine, ...] = ()
    discount: DiscountTerms | None = None
    tax_percentage: Decimal = _ZERO
    rounding_method: str = RoundingMethod.ROUND.value
    calculated_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)

    @property
    def total_minor(self) -> int:
        return to_minor_units(self.total_amount)

    @property
    def applied_rules(self) -> list[str]:
        seen = []
        for line in self.lines:
            for rule_id in line.applied_rules:
                if rule_id not in seen:
                    seen.append(rule_id)
        return seen

    def breakdown(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount_amount),
            "discount_code": self.discount.code if self.discount else None,
            "taxable": str(self.subtotal - self.discount_amount),
            "tax_percentage": str(self.tax_percentage),
            "tax": str(self.tax_amount),
            "shipping": str(self.shipping_charge),
            "total": str(self.total_amount),
            "currency": self.currency,
            "rounding_method": self.rounding_method,
            "lines": [
                {
                    "target": str(line.target),
                    "quantity": line.quantity,
                    "base_price": str(line.base_price),
                    "unit_price": str(line.unit_price),
                    "line_total": str(line.line_total),
                    "applied_rules": list(line.applied_rules),
                }
                for line in self.lines
            ],
        }


def _default_discount_lookup(code: str) -> DiscountTerms | None:
    from checkout.discount.discount import terms_for_code

    return terms_for_code(code)


def compute_price(
    lines: list[PricedLine],
    discount_code: str | None = None,
    config: PricingConfig | None = None,
    as_of: datetime | None = None,
    discount_lookup: Callable[[str], DiscountTerms | None] | None = None,
) -> PriceQuote:
    """Price resolved cart lines with an optional discount code.

    Raises ValidationError listing every malformed line (and any discount
    problems alongside), or DiscountInvalid listing every reason the code
    was rejected when the lines themselves are fine.
    """
    if config is None:
        config = get_config().snapshot()
    as_of = as_of or datetime.now(UTC)
    method = config.rounding_method
    rules = parse_rules(config.pricing_rules)

    line_errors = []
    quoted = []
    if not lines:
        line_errors.append("Cart is empty")

    for index, line in enumerate(lines):
        price = line.snapshot.catalog_price
        if not isinstance(line.quantity, int) or line.quantity <= 0:
            line_errors.append(f"Line {index + 1}: quantity must be a positive integer")
            continue
        if line.snapshot.product is None or price is None:
            line_errors.append(f"Line {index + 1}: no price available for {line.target}")
            continue

        base_price = round_money(to_decimal(price), method)
        unit_price, applied = apply_rules(base_price, line.snapshot, rules, as_of)
        unit_price = round_money(unit_price, method)
        quoted.append(
            QuotedLine(
                target=line.target,
                product_id=str(line.product_id),
                variant_id=str(line.variant_id) if line.variant_id else None,
                quantity=line.quantity,
                base_price=base_price,
                unit_price=unit_price,
                line_total=round_money(unit_price * line.quantity, method),
                applied_rules=tuple(applied),
            )
        )

    subtotal = round_money(sum((q.line_total for q in quoted), _ZERO), method)

    discount = None
    discount_amount = _ZERO.quantize(_CENT)
    discount_errors = []
    if discount_code:
        lookup = discount_lookup or _default_discount_lookup
        discount = lookup(discount_code.strip().upper())
        if discount is None:
            discount_errors.append("Invalid discount code")
        else:
            discount_errors.extend(discount.problems(subtotal, as_of))
            if not discount_errors:
                discount_amount = round_money(discount.amount_for(subtotal), method)

    if line_errors:
        errors = {"items": line_errors}
        if discount_errors:
            errors["discount_code"] = discount_errors
        raise ValidationError(errors)
    if discount_errors:
        raise DiscountInvalid(discount_code, discount_errors)

    taxable = subtotal - discount_amount
    tax_amount = round_money(taxable * to_decimal(config.tax_percentage) / _HUNDRED, method)
    if taxable >= to_decimal(config.free_shipping_threshold):
        shipping_charge = _ZERO.quantize(_CENT)
    else:
        shipping_charge = round_money(to_decimal(config.shipping_charge), method)
    total_amount = round_money(taxable + tax_amount + shipping_charge, method)

    quote = PriceQuote(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        shipping_charge=shipping_charge,
        total_amount=total_amount,
        currency=config.currency,
        lines=tuple(quoted),
        discount=discount,
        tax_percentage=to_decimal(config.tax_percentage),
        rounding_method=method.value,
        calculated_at=as_of,
    )
    logger.debug("Price computed", subtotal=str(subtotal), total=str(total_amount), discount_code=discount_code)
    return quote
