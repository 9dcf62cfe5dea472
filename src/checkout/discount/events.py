"""Domain events for the Discount aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Discount")
class DiscountCreated:
    __version__ = 1

    discount_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    value = Float(required=True)
    max_uses = Integer()


@checkout.event(part_of="Discount")
class DiscountDeactivated:
    __version__ = 1

    discount_id = Identifier(required=True)
    code = String(required=True)


@checkout.event(part_of="Discount")
class DiscountLocked:
    """A checkout took the exclusive right to use this code until ``locked_until``."""

    __version__ = 1

    discount_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    locked_until = DateTime(required=True)


@checkout.event(part_of="Discount")
class DiscountUnlocked:
    __version__ = 1

    discount_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    reason = String(max_length=50)


@checkout.event(part_of="Discount")
class DiscountRedeemed:
    """A converted order consumed one use of the code."""

    __version__ = 1

    discount_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    used_count = Integer(required=True)
