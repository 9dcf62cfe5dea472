"""Domain events for the OrderIntent aggregate.

Events are immutable facts that describe how a checkout reservation moved
through its lifecycle. They are written to the event store alongside the
aggregate and feed the audit trail.
"""

from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="OrderIntent")
class OrderIntentCreated:
    """A cart was priced and every line reserved."""

    __version__ = 1

    intent_id = Identifier(required=True)
    intent_number = String(required=True)
    user_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    discount_code = String()
    expires_at = DateTime(required=True)


@checkout.event(part_of="OrderIntent")
class OrderIntentCancelled:
    __version__ = 1

    intent_id = Identifier(required=True)
    cancelled_by = Identifier()
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="OrderIntent")
class OrderIntentExpired:
    """The reservation window closed without a settlement."""

    __version__ = 1

    intent_id = Identifier(required=True)
    expires_at = DateTime(required=True)
    expired_at = DateTime(required=True)


@checkout.event(part_of="OrderIntent")
class PaymentInitiated:
    """A payable order was registered with the gateway for this intent."""

    __version__ = 1

    intent_id = Identifier(required=True)
    gateway_order_id = String(required=True)
    total_amount = Float(required=True)


@checkout.event(part_of="OrderIntent")
class OrderIntentConverted:
    __version__ = 1

    intent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_id = String()
    converted_at = DateTime(required=True)
