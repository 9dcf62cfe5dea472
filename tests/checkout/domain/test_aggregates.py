"""OrderIntent and InventoryLock aggregates: construction, transitions and events."""

import re
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from checkout.catalog.port import Target, TargetKind
from checkout.errors import IntentInvalidState, InvalidLockState
from checkout.intent.events import (
    OrderIntentCancelled,
    OrderIntentConverted,
    OrderIntentCreated,
    OrderIntentExpired,
    PaymentInitiated,
)
from checkout.intent.intent import IntentStatus, OrderIntent, generate_intent_number
from checkout.inventory.events import InventoryLockConverted, InventoryLocked, InventoryLockReleased
from checkout.inventory.lock import InventoryLock, LockStatus
from checkout.pricing.engine import PriceQuote

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _quote(**overrides):
    values = {
        "subtotal": Decimal("1000.00"),
        "discount_amount": Decimal("0.00"),
        "tax_amount": Decimal("180.00"),
        "shipping_charge": Decimal("50.00"),
        "total_amount": Decimal("1230.00"),
        "currency": "INR",
        "calculated_at": NOW,
    }
    values.update(overrides)
    return PriceQuote(**values)


def _intent(**overrides):
    values = {
        "intent_id": "intent-001",
        "user_id": "user-001",
        "cart_items": [{"product_id": "prod-1", "variant_id": None, "quantity": 1, "unit_price": "1000.00"}],
        "quote": _quote(),
        "expires_at": NOW + timedelta(minutes=30),
        "shipping_address_id": "addr-001",
        "now": NOW,
    }
    values.update(overrides)
    return OrderIntent.create(**values)


class TestIntentNumber:
    def test_format(self):
        number = generate_intent_number(NOW)
        assert re.fullmatch(r"INT-\d{13}-[0-9A-Z]{7}", number)
        assert number.startswith(f"INT-{int(NOW.timestamp() * 1000)}-")


class TestOrderIntentCreation:
    def test_starts_in_intent_created(self):
        intent = _intent()
        assert intent.intent_status == IntentStatus.INTENT_CREATED

    def test_copies_totals_from_quote(self):
        intent = _intent()
        assert intent.subtotal == 1000.0
        assert intent.tax_amount == 180.0
        assert intent.shipping_charge == 50.0
        assert intent.total_amount == 1230.0

    def test_billing_defaults_to_shipping_address(self):
        intent = _intent()
        assert str(intent.billing_address_id) == "addr-001"

    def test_items_round_trip_through_snapshot(self):
        intent = _intent()
        assert intent.items[0]["product_id"] == "prod-1"

    def test_raises_created_event(self):
        intent = _intent()
        assert len(intent._events) == 1
        event = intent._events[0]
        assert isinstance(event, OrderIntentCreated)
        assert event.intent_number == intent.intent_number

    def test_pricing_trace_keeps_breakdown(self):
        intent = _intent()
        assert intent.pricing_trace["calculation_breakdown"]["total"] == "1230.00"


class TestOrderIntentExpiry:
    def test_not_lapsed_before_expiry(self):
        intent = _intent()
        assert not intent.is_lapsed(NOW + timedelta(minutes=29))

    def test_lapsed_at_expiry(self):
        intent = _intent()
        assert intent.is_lapsed(NOW + timedelta(minutes=30))

    def test_terminal_intent_is_never_lapsed(self):
        intent = _intent()
        intent.cancel("user-001")
        assert not intent.is_lapsed(NOW + timedelta(hours=1))


class TestOrderIntentTransitions:
    def test_cancel(self):
        intent = _intent()
        intent.cancel("user-001")
        assert intent.intent_status == IntentStatus.CANCELLED
        assert str(intent.cancelled_by) == "user-001"
        assert isinstance(intent._events[-1], OrderIntentCancelled)

    def test_expire(self):
        intent = _intent()
        intent.expire()
        assert intent.intent_status == IntentStatus.EXPIRED
        assert intent.expired_at is not None
        assert isinstance(intent._events[-1], OrderIntentExpired)

    def test_mark_converted(self):
        intent = _intent()
        intent.mark_converted("order-001", "pay_001")
        assert intent.intent_status == IntentStatus.CONVERTED
        assert str(intent.order_id) == "order-001"
        assert intent.payment_id == "pay_001"
        assert isinstance(intent._events[-1], OrderIntentConverted)

    def test_cannot_cancel_converted_intent(self):
        intent = _intent()
        intent.mark_converted("order-001", "pay_001")
        with pytest.raises(IntentInvalidState) as exc:
            intent.cancel("user-001")
        assert "CONVERTED" in str(exc.value)

    def test_cannot_convert_expired_intent(self):
        intent = _intent()
        intent.expire()
        with pytest.raises(IntentInvalidState):
            intent.mark_converted("order-001", "pay_001")

    def test_cannot_expire_cancelled_intent(self):
        intent = _intent()
        intent.cancel("user-001")
        with pytest.raises(IntentInvalidState):
            intent.expire()


class TestGatewayOrder:
    def test_attach_records_id_and_event(self):
        intent = _intent()
        intent.attach_gateway_order("order_abc")
        assert intent.gateway_order_id == "order_abc"
        assert isinstance(intent._events[-1], PaymentInitiated)

    def test_gateway_order_is_set_once(self):
        intent = _intent()
        intent.attach_gateway_order("order_abc")
        with pytest.raises(IntentInvalidState):
            intent.attach_gateway_order("order_xyz")

    def test_closed_intent_cannot_start_payment(self):
        intent = _intent()
        intent.cancel("user-001")
        with pytest.raises(IntentInvalidState):
            intent.attach_gateway_order("order_abc")


class TestInventoryLock:
    def _lock(self):
        return InventoryLock.create(
            Target(TargetKind.VARIANT, "var-1"),
            2,
            "intent-001",
            NOW + timedelta(minutes=30),
        )

    def test_create(self):
        lock = self._lock()
        assert lock.lock_status == LockStatus.LOCKED
        assert lock.target == Target(TargetKind.VARIANT, "var-1")
        assert lock.quantity_locked == 2
        assert isinstance(lock._events[0], InventoryLocked)

    def test_release(self):
        lock = self._lock()
        lock.release("cancelled")
        assert lock.lock_status == LockStatus.RELEASED
        assert lock.release_reason == "cancelled"
        assert isinstance(lock._events[-1], InventoryLockReleased)

    def test_convert(self):
        lock = self._lock()
        lock.convert("order-001")
        assert lock.lock_status == LockStatus.CONVERTED
        assert str(lock.order_id) == "order-001"
        assert isinstance(lock._events[-1], InventoryLockConverted)

    def test_released_lock_cannot_be_converted(self):
        lock = self._lock()
        lock.release("expired")
        with pytest.raises(InvalidLockState) as exc:
            lock.convert("order-001")
        assert "RELEASED" in str(exc.value)

    def test_converted_lock_cannot_be_released(self):
        lock = self._lock()
        lock.convert("order-001")
        with pytest.raises(InvalidLockState):
            lock.release("expired")

    def test_lapsed_only_while_locked(self):
        lock = self._lock()
        assert lock.is_lapsed(NOW + timedelta(minutes=31))
        lock.release("expired")
        assert not lock.is_lapsed(NOW + timedelta(minutes=31))

    def test_product_target(self):
        lock = InventoryLock.create(Target(TargetKind.PRODUCT, "prod-1"), 1, "intent-001", NOW)
        assert lock.target.kind == TargetKind.PRODUCT
        assert str(lock.target) == "product:prod-1"
