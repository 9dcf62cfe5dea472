"""Domain events for the Order aggregate produced by settlement."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A paid order intent was materialized as a durable Order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    order_intent_id = Identifier(required=True)
    user_id = Identifier(required=True)
    total_amount = Float(required=True)
    currency = String(required=True)
    payment_id = String()
    line_count = Integer(required=True)
    placed_at = DateTime(required=True)
