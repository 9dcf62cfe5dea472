"""Pricing engine: totals, discounts, shipping, rounding and pricing rules."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from protean.exceptions import ValidationError

from checkout.catalog.port import CatalogSnapshot, ProductInfo, VariantInfo
from checkout.config.service import PricingConfig, RoundingMethod
from checkout.errors import DiscountInvalid
from checkout.pricing.engine import DiscountTerms, PricedLine, compute_price, round_money, to_minor_units

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

CONFIG = PricingConfig(
    tax_percentage=Decimal("18"),
    free_shipping_threshold=Decimal("5000"),
    shipping_charge=Decimal("50"),
)


def _line(price, quantity=1, product_id="prod-1", **product_attrs):
    product = ProductInfo(id=product_id, name="Item", base_price=price, **product_attrs)
    return PricedLine(snapshot=CatalogSnapshot(product=product), quantity=quantity, product_id=product_id)


def _terms(**overrides):
    values = {"id": "disc-1", "code": "SAVE10", "discount_type": "percentage", "value": Decimal("10")}
    values.update(overrides)
    return DiscountTerms(**values)


def _lookup(terms):
    return lambda code: terms if code == terms.code else None


def _price(lines, discount=None, config=CONFIG, code=None):
    return compute_price(
        lines,
        discount_code=code or (discount.code if discount else None),
        config=config,
        as_of=NOW,
        discount_lookup=_lookup(discount) if discount else (lambda code: None),
    )


class TestTotals:
    def test_percentage_discount_below_free_shipping(self):
        quote = _price([_line(1000)], discount=_terms())

        assert quote.subtotal == Decimal("1000.00")
        assert quote.discount_amount == Decimal("100.00")
        assert quote.tax_amount == Decimal("162.00")
        assert quote.shipping_charge == Decimal("50.00")
        assert quote.total_amount == Decimal("1112.00")

    def test_no_discount(self):
        quote = _price([_line(1000)])
        assert quote.total_amount == Decimal("1230.00")
        assert quote.discount is None

    def test_quantities_multiply_unit_price(self):
        quote = _price([_line(250, quantity=3), _line(100, quantity=2, product_id="prod-2")])
        assert quote.subtotal == Decimal("950.00")
        assert [line.line_total for line in quote.lines] == [Decimal("750.00"), Decimal("200.00")]

    def test_free_shipping_at_threshold(self):
        quote = _price([_line(5000)])
        assert quote.shipping_charge == Decimal("0.00")

    def test_free_shipping_threshold_applies_after_discount(self):
        # 5500 - 10% = 4950, below the 5000 threshold
        quote = _price([_line(5500)], discount=_terms())
        assert quote.shipping_charge == Decimal("50.00")

    def test_total_in_minor_units(self):
        quote = _price([_line(1000)], discount=_terms())
        assert quote.total_minor == 111200

    def test_deterministic(self):
        first = _price([_line(333.33, quantity=3)], discount=_terms())
        second = _price([_line(333.33, quantity=3)], discount=_terms())
        assert first.breakdown() == second.breakdown()


class TestFlatDiscount:
    def test_flat_amount(self):
        quote = _price([_line(1000)], discount=_terms(discount_type="flat", value=Decimal("150")))
        assert quote.discount_amount == Decimal("150.00")

    def test_flat_amount_capped_at_subtotal(self):
        quote = _price([_line(100)], discount=_terms(discount_type="flat", value=Decimal("500")))
        assert quote.discount_amount == Decimal("100.00")
        assert quote.tax_amount == Decimal("0.00")
        assert quote.total_amount == Decimal("50.00")


class TestDiscountRejection:
    def test_unknown_code(self):
        with pytest.raises(DiscountInvalid) as exc:
            _price([_line(1000)], code="NOPE")
        assert "Invalid discount code" in exc.value.reasons

    def test_every_reason_is_reported(self):
        terms = _terms(
            is_active=False,
            valid_until=NOW - timedelta(days=1),
            min_cart_value=Decimal("2000"),
            max_uses=5,
            used_count=5,
        )
        with pytest.raises(DiscountInvalid) as exc:
            _price([_line(1000)], discount=terms)

        reasons = exc.value.reasons
        assert "Discount code is not active" in reasons
        assert "Discount code has expired" in reasons
        assert "Minimum cart value of 2000 required" in reasons
        assert "Discount code usage limit reached" in reasons

    def test_not_yet_valid(self):
        with pytest.raises(DiscountInvalid) as exc:
            _price([_line(1000)], discount=_terms(valid_from=NOW + timedelta(days=1)))
        assert exc.value.reasons == ["Discount code is not yet valid"]

    def test_code_is_normalized_before_lookup(self):
        quote = compute_price(
            [_line(1000)],
            discount_code="  save10 ",
            config=CONFIG,
            as_of=NOW,
            discount_lookup=_lookup(_terms()),
        )
        assert quote.discount_amount == Decimal("100.00")


class TestLineValidation:
    def test_empty_cart(self):
        with pytest.raises(ValidationError) as exc:
            _price([])
        assert "Cart is empty" in str(exc.value)

    def test_all_bad_lines_reported_together(self):
        missing = PricedLine(snapshot=CatalogSnapshot(product=None), quantity=1, product_id="gone")
        with pytest.raises(ValidationError) as exc:
            _price([_line(100, quantity=0), missing])
        message = str(exc.value)
        assert "Line 1: quantity must be a positive integer" in message
        assert "Line 2: no price available for product:gone" in message

    def test_discount_problems_reported_with_line_errors(self):
        with pytest.raises(ValidationError) as exc:
            _price([_line(100, quantity=0)], code="NOPE")
        assert "discount_code" in exc.value.messages


class TestRounding:
    def test_round_money(self):
        assert round_money(Decimal("99.995")) == Decimal("100.00")
        assert round_money(Decimal("99.994")) == Decimal("99.99")
        assert round_money(Decimal("99.99"), RoundingMethod.FLOOR) == Decimal("99.00")
        assert round_money(Decimal("99.01"), RoundingMethod.CEIL) == Decimal("100.00")

    def test_floor_applies_to_every_amount(self):
        config = PricingConfig(shipping_charge=Decimal("50"), rounding_method=RoundingMethod.FLOOR)
        quote = _price([_line(99.99)], config=config)
        assert quote.lines[0].unit_price == Decimal("99.00")
        assert quote.tax_amount == Decimal("17.00")
        assert quote.total_amount == Decimal("166.00")

    def test_ceil_applies_to_every_amount(self):
        config = PricingConfig(shipping_charge=Decimal("50"), rounding_method=RoundingMethod.CEIL)
        quote = _price([_line(99.99)], config=config)
        assert quote.lines[0].unit_price == Decimal("100.00")
        assert quote.tax_amount == Decimal("18.00")
        assert quote.total_amount == Decimal("168.00")

    def test_round_keeps_cents(self):
        quote = _price([_line(99.99)])
        assert quote.tax_amount == Decimal("18.00")
        assert quote.total_amount == Decimal("167.99")

    def test_minor_units(self):
        assert to_minor_units(Decimal("1112.00")) == 111200
        assert to_minor_units(10.005) == 1001


class TestPricingRules:
    GOLD_MARKUP = {
        "id": "gold-markup",
        "priority": 10,
        "conditions": {"metal_type": "gold"},
        "action_type": "percentage_markup",
        "action_value": 10,
    }

    def _config(self, *rules):
        return PricingConfig(shipping_charge=Decimal("50"), pricing_rules=tuple(rules))

    def test_matching_rule_adjusts_unit_price(self):
        quote = _price([_line(1000, metal_type="gold")], config=self._config(self.GOLD_MARKUP))
        assert quote.lines[0].base_price == Decimal("1000.00")
        assert quote.lines[0].unit_price == Decimal("1100.00")
        assert quote.applied_rules == ["gold-markup"]

    def test_non_matching_rule_is_skipped(self):
        quote = _price([_line(1000, metal_type="silver")], config=self._config(self.GOLD_MARKUP))
        assert quote.lines[0].unit_price == Decimal("1000.00")
        assert quote.applied_rules == []

    def test_rules_apply_in_ascending_priority(self):
        flat = {"id": "flat-off", "priority": 20, "action_type": "fixed_discount", "action_value": 100}
        quote = _price([_line(1000, metal_type="gold")], config=self._config(flat, self.GOLD_MARKUP))
        # (1000 * 1.10) - 100
        assert quote.lines[0].unit_price == Decimal("1000.00")
        assert quote.applied_rules == ["gold-markup", "flat-off"]

    def test_weight_condition(self):
        heavy = {
            "id": "heavy",
            "conditions": {"weight": {"operator": ">=", "value": 5}},
            "action_type": "fixed_markup",
            "action_value": 200,
        }
        light = _price([_line(1000, weight=4.0)], config=self._config(heavy))
        heavier = _price([_line(1000, weight=5.0)], config=self._config(heavy))
        assert light.lines[0].unit_price == Decimal("1000.00")
        assert heavier.lines[0].unit_price == Decimal("1200.00")

    def test_variant_weight_wins_over_product_weight(self):
        heavy = {
            "id": "heavy",
            "conditions": {"weight": {"operator": ">", "value": 5}},
            "action_type": "fixed_markup",
            "action_value": 200,
        }
        product = ProductInfo(id="prod-1", name="Ring", base_price=1000, weight=4.0)
        variant = VariantInfo(id="var-1", product_id="prod-1", sku="R-1", weight=6.0)
        line = PricedLine(
            snapshot=CatalogSnapshot(product=product, variant=variant),
            quantity=1,
            product_id="prod-1",
            variant_id="var-1",
        )
        quote = _price([line], config=self._config(heavy))
        assert quote.lines[0].unit_price == Decimal("1200.00")

    def test_inactive_and_out_of_window_rules_are_ignored(self):
        inactive = {**self.GOLD_MARKUP, "id": "inactive", "is_active": False}
        future = {**self.GOLD_MARKUP, "id": "future", "valid_from": (NOW + timedelta(days=1)).isoformat()}
        past = {**self.GOLD_MARKUP, "id": "past", "valid_until": (NOW - timedelta(days=1)).isoformat()}
        quote = _price([_line(1000, metal_type="gold")], config=self._config(inactive, future, past))
        assert quote.applied_rules == []

    def test_malformed_rule_is_skipped(self):
        broken = {"id": "broken", "action_type": "no_such_action", "action_value": 5}
        quote = _price([_line(1000, metal_type="gold")], config=self._config(broken, self.GOLD_MARKUP))
        assert quote.applied_rules == ["gold-markup"]

    def test_rule_with_non_numeric_value_is_skipped(self):
        broken = {"id": "broken", "action_type": "fixed_markup", "action_value": "abc"}
        quote = _price([_line(1000, metal_type="gold")], config=self._config(broken, self.GOLD_MARKUP))
        assert quote.applied_rules == ["gold-markup"]

    def test_rule_with_non_finite_value_is_skipped(self):
        broken = {"id": "broken", "action_type": "fixed_markup", "action_value": "NaN"}
        quote = _price([_line(1000)], config=self._config(broken))
        assert quote.applied_rules == []
        assert quote.subtotal == Decimal("1000.00")

    def test_price_never_goes_below_zero(self):
        huge = {"id": "huge", "action_type": "fixed_discount", "action_value": 5000}
        quote = _price([_line(1000)], config=self._config(huge))
        assert quote.lines[0].unit_price == Decimal("0.00")
        assert quote.subtotal == Decimal("0.00")
