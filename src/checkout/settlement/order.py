"""Order aggregate (CQRS) — the durable result of a settled checkout.

An Order is only ever created from a paid OrderIntent, with totals copied
verbatim and line items frozen from the intent's cart snapshot. The Order id
is derived from the intent id, so one intent can never produce two Orders no
matter how many settlement attempts race.

State Machine:
    (start) → PAID

Post-payment lifecycle (fulfilment, returns, refunds) belongs to the
ordering system downstream.
"""

import secrets
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import NAMESPACE_URL, uuid5

from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from checkout.domain import checkout
from checkout.settlement.events import OrderPlaced

_ORDER_NAMESPACE = uuid5(NAMESPACE_URL, "checkout:order")


class OrderStatus(Enum):
    PAID = "PAID"


class PaymentStatus(Enum):
    PAID = "paid"


def order_id_for(intent_id) -> str:
    """The one Order id an intent can ever settle into."""
    return str(uuid5(_ORDER_NAMESPACE, str(intent_id)))


def generate_order_number(now: datetime | None = None) -> str:
    """``ORD-<epoch ms>-<4 hex chars>``"""
    now = now or datetime.now(UTC)
    return f"ORD-{int(now.timestamp() * 1000)}-{secrets.token_hex(2).upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class VariantSnapshot:
    """Variant attributes as they were at purchase time.

    Never refreshed from the catalog: the order shows what was bought.
    """

    sku = String(max_length=100)
    size = String(max_length=50)
    color = String(max_length=50)
    finish = String(max_length=50)
    weight = Float()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    product_name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    line_total = Float(required=True, min_value=0.0)
    variant_snapshot = ValueObject(VariantSnapshot)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    order_number = String(required=True, max_length=40)
    order_intent_id = Identifier(required=True, unique=True)
    user_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PAID.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PAID.value)
    lines = HasMany(OrderLine)
    shipping_address_id = Identifier(required=True)
    billing_address_id = Identifier()
    subtotal = Float(required=True, min_value=0.0)
    discount_amount = Float(default=0.0, min_value=0.0)
    tax_amount = Float(default=0.0, min_value=0.0)
    shipping_cost = Float(default=0.0, min_value=0.0)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="INR")
    discount_code = String(max_length=50)
    payment_method = String(max_length=50, default="online")
    gateway_order_id = String(max_length=100)
    payment_id = String(max_length=100)
    placed_at = DateTime()

    @classmethod
    def place(cls, intent, now: datetime | None = None, payment_method: str = "online"):
        """Materialize ``intent`` (already claimed as CONVERTED) as an Order."""
        now = now or datetime.now(UTC)
        order = cls(
            id=order_id_for(intent.id),
            order_number=generate_order_number(now),
            order_intent_id=str(intent.id),
            user_id=str(intent.user_id),
            shipping_address_id=str(intent.shipping_address_id),
            billing_address_id=str(intent.billing_address_id) if intent.billing_address_id else None,
            subtotal=intent.subtotal,
            discount_amount=intent.discount_amount,
            tax_amount=intent.tax_amount,
            shipping_cost=intent.shipping_charge,
            total_amount=intent.total_amount,
            currency=intent.currency,
            discount_code=intent.discount_code,
            payment_method=payment_method,
            gateway_order_id=intent.gateway_order_id,
            payment_id=intent.payment_id,
            placed_at=now,
        )
        for item in intent.items:
            order.add_lines(_line_from_snapshot(item))

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                order_intent_id=str(intent.id),
                user_id=str(intent.user_id),
                total_amount=order.total_amount,
                currency=order.currency,
                payment_id=order.payment_id,
                line_count=len(order.lines),
                placed_at=now,
            )
        )
        return order


def _line_from_snapshot(item: dict) -> OrderLine:
    variant = item.get("variant")
    unit_price = Decimal(str(item["unit_price"]))
    return OrderLine(
        product_id=item["product_id"],
        variant_id=item.get("variant_id"),
        product_name=item.get("product_name") or "Unknown Product",
        unit_price=float(unit_price),
        quantity=item["quantity"],
        line_total=float(Decimal(str(item.get("line_total") or unit_price * item["quantity"]))),
        variant_snapshot=(
            VariantSnapshot(
                sku=variant.get("sku"),
                size=variant.get("size"),
                color=variant.get("color"),
                finish=variant.get("finish"),
                weight=variant.get("weight"),
            )
            if variant
            else None
        ),
    )
