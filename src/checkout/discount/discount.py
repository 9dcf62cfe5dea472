"""Discount aggregate (CQRS) — a redeemable code with an exclusive checkout lock.

The lock fields live on the discount row itself: ``locked_by_intent_id`` and
``locked_until``. At most one unexpired lock exists per code. Usage is
tracked both as a counter and as the set of intent ids that redeemed it, so
a retried settlement can never count the same checkout twice.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.discount.events import (
    DiscountCreated,
    DiscountDeactivated,
    DiscountLocked,
    DiscountRedeemed,
    DiscountUnlocked,
)
from checkout.domain import checkout
from checkout.pricing.engine import DiscountTerms
from checkout.utils.clock import as_utc


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


@checkout.aggregate
class Discount:
    code = String(required=True, max_length=50, unique=True)
    description = String(max_length=255)
    discount_type = String(choices=DiscountType, required=True)
    value = Float(required=True, min_value=0.0)
    min_cart_value = Float(default=0.0, min_value=0.0)
    max_uses = Integer(min_value=1)
    used_count = Integer(default=0, min_value=0)
    valid_from = DateTime()
    valid_until = DateTime()
    is_active = Boolean(default=True)
    locked_by_intent_id = Identifier()
    locked_until = DateTime()
    redeemed_intent_ids = Text()  # JSON array of intent ids
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def percentage_must_not_exceed_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.value is not None and self.value > 100:
            raise ValidationError({"value": ["Percentage must be between 0 and 100"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        discount_type,
        value,
        min_cart_value=0.0,
        max_uses=None,
        valid_from=None,
        valid_until=None,
        description=None,
    ):
        now = datetime.now(UTC)
        discount = cls(
            code=code.strip().upper(),
            description=description,
            discount_type=discount_type,
            value=value,
            min_cart_value=min_cart_value or 0.0,
            max_uses=max_uses,
            used_count=0,
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=True,
            redeemed_intent_ids=json.dumps([]),
            created_at=now,
            updated_at=now,
        )
        discount.raise_(
            DiscountCreated(
                discount_id=str(discount.id),
                code=discount.code,
                discount_type=discount.discount_type,
                value=discount.value,
                max_uses=discount.max_uses,
            )
        )
        return discount

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def redeemed_by(self) -> list[str]:
        return json.loads(self.redeemed_intent_ids) if self.redeemed_intent_ids else []

    @property
    def usage_exhausted(self) -> bool:
        return self.max_uses is not None and (self.used_count or 0) >= self.max_uses

    def lock_held_by_other(self, intent_id, as_of: datetime) -> bool:
        if not self.locked_by_intent_id or str(self.locked_by_intent_id) == str(intent_id):
            return False
        return self.locked_until is not None and as_utc(self.locked_until) > as_of

    def terms(self) -> DiscountTerms:
        return DiscountTerms(
            id=str(self.id),
            code=self.code,
            discount_type=self.discount_type,
            value=Decimal(str(self.value)),
            min_cart_value=Decimal(str(self.min_cart_value or 0)),
            max_uses=self.max_uses,
            used_count=self.used_count or 0,
            is_active=bool(self.is_active),
            valid_from=self.valid_from,
            valid_until=self.valid_until,
        )

    # -------------------------------------------------------------------
    # Lock and usage
    # -------------------------------------------------------------------
    def acquire_lock(self, intent_id, until: datetime) -> None:
        self.locked_by_intent_id = str(intent_id)
        self.locked_until = until
        self.updated_at = datetime.now(UTC)
        self.raise_(DiscountLocked(discount_id=str(self.id), intent_id=str(intent_id), locked_until=until))

    def release_lock(self, reason: str) -> None:
        intent_id = str(self.locked_by_intent_id)
        self.locked_by_intent_id = None
        self.locked_until = None
        self.updated_at = datetime.now(UTC)
        self.raise_(DiscountUnlocked(discount_id=str(self.id), intent_id=intent_id, reason=reason))

    def redeem(self, intent_id) -> None:
        """Count one use for ``intent_id``. Callers check ``redeemed_by`` first."""
        self.redeemed_intent_ids = json.dumps([*self.redeemed_by, str(intent_id)])
        self.used_count = (self.used_count or 0) + 1
        self.updated_at = datetime.now(UTC)
        self.raise_(DiscountRedeemed(discount_id=str(self.id), intent_id=str(intent_id), used_count=self.used_count))

    def deactivate(self) -> None:
        if not self.is_active:
            raise ValidationError({"is_active": ["Discount is already inactive"]})
        self.is_active = False
        self.updated_at = datetime.now(UTC)
        self.raise_(DiscountDeactivated(discount_id=str(self.id), code=self.code))


def find_by_code(code: str) -> Discount | None:
    repo = current_domain.repository_for(Discount)
    matches = repo._dao.query.filter(code=code.strip().upper()).all().items
    return matches[0] if matches else None


def terms_for_code(code: str) -> DiscountTerms | None:
    discount = find_by_code(code)
    return discount.terms() if discount is not None else None
