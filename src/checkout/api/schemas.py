"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer) — separate from the
internal aggregates and service results.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    unit_price: float | None = Field(default=None, ge=0)


class PriceSummarySchema(BaseModel):
    subtotal: float
    discount_amount: float
    tax_amount: float
    shipping_charge: float
    total_amount: float
    currency: str


class VariantSnapshotSchema(BaseModel):
    sku: str | None = None
    size: str | None = None
    color: str | None = None
    finish: str | None = None
    weight: float | None = None


# ---------------------------------------------------------------------------
# Order intent
# ---------------------------------------------------------------------------
class CreateIntentRequest(BaseModel):
    items: list[CartLineSchema] = Field(min_length=1)
    shipping_address_id: str
    billing_address_id: str | None = None
    discount_code: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-001", "variant_id": "var-001", "quantity": 1, "unit_price": 1000.0}],
                    "shipping_address_id": "addr-001",
                    "discount_code": "SAVE10",
                }
            ]
        }
    }


class IntentResponse(BaseModel):
    id: str
    intent_number: str
    user_id: str
    status: str
    items: list[dict]
    pricing: PriceSummarySchema
    discount_code: str | None = None
    expires_at: datetime
    shipping_address_id: str
    billing_address_id: str | None = None
    gateway_order_id: str | None = None
    order_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_intent(cls, intent) -> "IntentResponse":
        return cls(
            id=str(intent.id),
            intent_number=intent.intent_number,
            user_id=str(intent.user_id),
            status=intent.status,
            items=intent.items,
            pricing=PriceSummarySchema(
                subtotal=intent.subtotal,
                discount_amount=intent.discount_amount,
                tax_amount=intent.tax_amount,
                shipping_charge=intent.shipping_charge,
                total_amount=intent.total_amount,
                currency=intent.currency,
            ),
            discount_code=intent.discount_code,
            expires_at=intent.expires_at,
            shipping_address_id=str(intent.shipping_address_id),
            billing_address_id=str(intent.billing_address_id) if intent.billing_address_id else None,
            gateway_order_id=intent.gateway_order_id,
            order_id=str(intent.order_id) if intent.order_id else None,
            created_at=intent.created_at,
        )


class IntentListResponse(BaseModel):
    intents: list[IntentResponse]


class PaymentSessionResponse(BaseModel):
    intent_id: str
    intent_number: str
    gateway_order_id: str
    amount_minor: int
    currency: str


class ConfirmPaymentRequest(BaseModel):
    gateway_order_id: str
    payment_id: str
    signature: str


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------
class OrderLineSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    product_name: str
    unit_price: float
    quantity: int
    line_total: float
    variant_snapshot: VariantSnapshotSchema | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    order_intent_id: str
    status: str
    payment_status: str
    lines: list[OrderLineSchema]
    subtotal: float
    discount_amount: float
    tax_amount: float
    shipping_cost: float
    total_amount: float
    currency: str
    payment_id: str | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            order_intent_id=str(order.order_intent_id),
            status=order.status,
            payment_status=order.payment_status,
            lines=[
                OrderLineSchema(
                    product_id=str(line.product_id),
                    variant_id=str(line.variant_id) if line.variant_id else None,
                    product_name=line.product_name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                    variant_snapshot=(
                        VariantSnapshotSchema(**line.variant_snapshot.to_dict()) if line.variant_snapshot else None
                    ),
                )
                for line in order.lines
            ],
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            tax_amount=order.tax_amount,
            shipping_cost=order.shipping_cost,
            total_amount=order.total_amount,
            currency=order.currency,
            payment_id=order.payment_id,
        )


# ---------------------------------------------------------------------------
# Webhook / discounts / inventory / maintenance
# ---------------------------------------------------------------------------
class WebhookAckResponse(BaseModel):
    received: bool = True
    status: str
    order_id: str | None = None


class CreateDiscountRequest(BaseModel):
    code: str
    discount_type: str
    value: float = Field(ge=0)
    description: str | None = None
    min_cart_value: float = Field(default=0.0, ge=0)
    max_uses: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class DiscountIdResponse(BaseModel):
    discount_id: str


class AvailabilityResponse(BaseModel):
    target_kind: str
    target_id: str
    available: int


class SweepResponse(BaseModel):
    intents_expired: int
    locks_released: int
    locks_converted: int
    discount_locks_cleared: int
    errors: list[str] = []
