"""Domain events for the InventoryLock aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="InventoryLock")
class InventoryLocked:
    """Units were taken out of stock and reserved for an order intent."""

    __version__ = 1

    lock_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    target_kind = String(required=True)
    target_id = Identifier(required=True)
    quantity = Integer(required=True)
    expires_at = DateTime(required=True)


@checkout.event(part_of="InventoryLock")
class InventoryLockReleased:
    """Reserved units were handed back to stock."""

    __version__ = 1

    lock_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    target_kind = String(required=True)
    target_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(max_length=50)


@checkout.event(part_of="InventoryLock")
class InventoryLockConverted:
    """Reserved units now belong to a placed order."""

    __version__ = 1

    lock_id = Identifier(required=True)
    intent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
