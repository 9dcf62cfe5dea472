"""FastAPI routes for the Checkout domain — intents, payments, discounts."""

from fastapi import APIRouter, Header, HTTPException, Query, Request
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AvailabilityResponse,
    ConfirmPaymentRequest,
    CreateDiscountRequest,
    CreateIntentRequest,
    DiscountIdResponse,
    IntentListResponse,
    IntentResponse,
    OrderResponse,
    PaymentSessionResponse,
    SweepResponse,
    WebhookAckResponse,
)
from checkout.catalog.port import Target, TargetKind
from checkout.discount.registry import CreateDiscount
from checkout.errors import Forbidden, PaymentSignatureMismatch
from checkout.intent import reaper, service
from checkout.intent.revalidation import CartLine
from checkout.inventory import ledger
from checkout.settlement.converter import PaymentProof, convert
from checkout.settlement.webhook import handle_webhook

ADMIN_ROLE = "admin"


def _is_admin(role: str | None) -> bool:
    return (role or "").lower() == ADMIN_ROLE


def _load_owned(intent_id: str, user_id: str, role: str | None):
    intent = service.get_intent(intent_id)
    if not _is_admin(role) and str(intent.user_id) != str(user_id):
        raise Forbidden()
    return intent


# ---------------------------------------------------------------------------
# Order Intent Router
# ---------------------------------------------------------------------------
intent_router = APIRouter(prefix="/order-intents", tags=["order-intents"])


@intent_router.post("", status_code=201, response_model=IntentResponse)
async def create_intent(body: CreateIntentRequest, x_user_id: str = Header()) -> IntentResponse:
    """Reserve the cart and price it."""
    intent = service.create_intent(
        user_id=x_user_id,
        lines=[
            CartLine(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in body.items
        ],
        shipping_address_id=body.shipping_address_id,
        discount_code=body.discount_code,
        billing_address_id=body.billing_address_id,
    )
    return IntentResponse.from_intent(intent)


@intent_router.get("", response_model=IntentListResponse)
async def list_intents(x_user_id: str = Header(), status: str | None = Query(default=None)) -> IntentListResponse:
    intents = service.list_user_intents(x_user_id, status=status)
    return IntentListResponse(intents=[IntentResponse.from_intent(intent) for intent in intents])


@intent_router.get("/{intent_id}", response_model=IntentResponse)
async def get_intent(
    intent_id: str,
    x_user_id: str = Header(),
    x_user_role: str | None = Header(default=None),
) -> IntentResponse:
    return IntentResponse.from_intent(_load_owned(intent_id, x_user_id, x_user_role))


@intent_router.post("/{intent_id}/cancel", response_model=IntentResponse)
async def cancel_intent(
    intent_id: str,
    x_user_id: str = Header(),
    x_user_role: str | None = Header(default=None),
) -> IntentResponse:
    intent = service.cancel_intent(intent_id, actor_id=x_user_id, is_admin=_is_admin(x_user_role))
    return IntentResponse.from_intent(intent)


@intent_router.post("/{intent_id}/payment", response_model=PaymentSessionResponse)
async def initiate_payment(
    intent_id: str,
    x_user_id: str = Header(),
    x_user_role: str | None = Header(default=None),
) -> PaymentSessionResponse:
    """Create (or return) the gateway order for this intent."""
    _load_owned(intent_id, x_user_id, x_user_role)
    session = service.initiate_payment(intent_id)
    return PaymentSessionResponse(
        intent_id=session.intent_id,
        intent_number=session.intent_number,
        gateway_order_id=session.gateway_order_id,
        amount_minor=session.amount_minor,
        currency=session.currency,
    )


@intent_router.post("/{intent_id}/confirm", response_model=OrderResponse)
async def confirm_payment(
    intent_id: str,
    body: ConfirmPaymentRequest,
    x_user_id: str = Header(),
    x_user_role: str | None = Header(default=None),
) -> OrderResponse:
    """Settle the intent with the proof returned by the gateway's checkout."""
    _load_owned(intent_id, x_user_id, x_user_role)
    order = convert(
        intent_id,
        PaymentProof(
            gateway_order_id=body.gateway_order_id,
            payment_id=body.payment_id,
            signature=body.signature,
        ),
    )
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Payment Webhook Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=WebhookAckResponse)
async def payment_webhook(request: Request, x_gateway_signature: str = Header(default="")) -> WebhookAckResponse:
    """Process a payment gateway webhook callback. Always acknowledged once authenticated."""
    raw_body = await request.body()
    try:
        ack = handle_webhook(raw_body, x_gateway_signature)
    except PaymentSignatureMismatch:
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from None
    return WebhookAckResponse(**ack.to_dict())


# ---------------------------------------------------------------------------
# Discount Router
# ---------------------------------------------------------------------------
discount_router = APIRouter(prefix="/discounts", tags=["discounts"])


@discount_router.post("", status_code=201, response_model=DiscountIdResponse)
async def create_discount(body: CreateDiscountRequest) -> DiscountIdResponse:
    command = CreateDiscount(
        code=body.code,
        description=body.description,
        discount_type=body.discount_type,
        value=body.value,
        min_cart_value=body.min_cart_value,
        max_uses=body.max_uses,
        valid_from=body.valid_from,
        valid_until=body.valid_until,
    )
    result = current_domain.process(command, asynchronous=False)
    return DiscountIdResponse(discount_id=result)


# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/{kind}/{target_id}/availability", response_model=AvailabilityResponse)
async def availability(kind: str, target_id: str) -> AvailabilityResponse:
    try:
        target_kind = TargetKind(kind)
    except ValueError:
        raise ValidationError({"kind": [f"Unknown target kind {kind}"]}) from None
    available = ledger.available_stock(Target(target_kind, target_id))
    return AvailabilityResponse(target_kind=target_kind.value, target_id=target_id, available=available)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/release-lapsed", response_model=SweepResponse)
async def release_lapsed() -> SweepResponse:
    """Run one expiry sweep now."""
    report = reaper.sweep()
    return SweepResponse(**report.to_dict())
