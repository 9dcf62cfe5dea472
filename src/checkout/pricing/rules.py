"""Configurable pricing rules (markups and discounts by product attributes).

Rules are stored as JSON under the ``pricing_rules`` setting::

    {"id": "gold-markup", "priority": 10, "is_active": true,
     "conditions": {"metal_type": "gold", "weight": {"operator": ">", "value": 5}},
     "action_type": "percentage_markup", "action_value": 12}

Every active rule whose conditions all match is applied to the running
price. Rules are applied in ascending priority so that the highest priority
rule is evaluated last and has the final say.
"""

import json
import operator
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

import structlog

from checkout.catalog.port import CatalogSnapshot
from checkout.utils.clock import as_utc

logger = structlog.get_logger(__name__)

_HUNDRED = Decimal("100")

_WEIGHT_OPERATORS = {
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
    ">=": operator.ge,
    "<=": operator.le,
}


class RuleAction(Enum):
    PERCENTAGE_MARKUP = "percentage_markup"
    FIXED_MARKUP = "fixed_markup"
    PERCENTAGE_DISCOUNT = "percentage_discount"
    FIXED_DISCOUNT = "fixed_discount"


def _parse_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value)))


@dataclass(frozen=True)
class PricingRule:
    id: str
    action: RuleAction
    action_value: Decimal
    priority: int = 0
    is_active: bool = True
    metal_type: str | None = None
    category: str | None = None
    weight_operator: str | None = None
    weight_value: Decimal | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    conditions: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, raw: dict) -> "PricingRule":
        conditions = raw.get("conditions") or {}
        if isinstance(conditions, str):
            conditions = json.loads(conditions)
        weight = conditions.get("weight") or {}
        rule = cls(
            id=str(raw.get("id") or raw.get("name") or ""),
            action=RuleAction(raw["action_type"]),
            action_value=Decimal(str(raw.get("action_value", 0))),
            priority=int(raw.get("priority", 0)),
            is_active=bool(raw.get("is_active", True)),
            metal_type=conditions.get("metal_type"),
            category=conditions.get("category"),
            weight_operator=(weight.get("operator") or ">") if weight else None,
            weight_value=Decimal(str(weight.get("value", 0))) if weight else None,
            valid_from=_parse_datetime(raw.get("valid_from")),
            valid_until=_parse_datetime(raw.get("valid_until")),
            conditions=conditions,
        )
        if not rule.action_value.is_finite() or (rule.weight_value is not None and not rule.weight_value.is_finite()):
            raise ValueError("Rule values must be finite numbers")
        return rule

    def is_live(self, as_of: datetime) -> bool:
        if not self.is_active:
            return False
        if self.valid_from is not None and self.valid_from > as_of:
            return False
        if self.valid_until is not None and self.valid_until < as_of:
            return False
        return True

    def matches(self, snapshot: CatalogSnapshot) -> bool:
        product = snapshot.product
        if self.metal_type and (product is None or product.metal_type != self.metal_type):
            return False
        if self.category and (product is None or product.category != self.category):
            return False
        if self.weight_operator is not None:
            compare = _WEIGHT_OPERATORS.get(self.weight_operator)
            if compare is None:
                return False
            weight = Decimal(str(snapshot.weight or 0))
            if not compare(weight, self.weight_value):
                return False
        return True

    def apply(self, price: Decimal) -> Decimal:
        if self.action is RuleAction.PERCENTAGE_MARKUP:
            return price * (1 + self.action_value / _HUNDRED)
        if self.action is RuleAction.FIXED_MARKUP:
            return price + self.action_value
        if self.action is RuleAction.PERCENTAGE_DISCOUNT:
            return price * (1 - self.action_value / _HUNDRED)
        return price - self.action_value


def parse_rules(raw_rules) -> list[PricingRule]:
    """Parse stored rules, skipping (and logging) malformed entries."""
    rules = []
    for raw in raw_rules or ():
        try:
            rules.append(PricingRule.from_dict(raw))
        except (KeyError, ValueError, TypeError, AttributeError, InvalidOperation) as exc:
            logger.warning("Skipping malformed pricing rule", rule=str(raw), error=str(exc))
    return rules


def apply_rules(
    base_price: Decimal,
    snapshot: CatalogSnapshot,
    rules: list[PricingRule],
    as_of: datetime,
) -> tuple[Decimal, list[str]]:
    """Run ``base_price`` through every matching live rule.

    Returns the adjusted price (never below zero) and the ids of the rules
    that fired, in application order.
    """
    price = base_price
    applied = []
    for rule in sorted(rules, key=lambda r: (r.priority, r.id)):
        if rule.is_live(as_of) and rule.matches(snapshot):
            price = rule.apply(price)
            applied.append(rule.id)
    return max(price, Decimal("0")), applied
