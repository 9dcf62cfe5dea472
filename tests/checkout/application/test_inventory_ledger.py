"""Inventory ledger: conditional reservation, exactly-once release, conversion."""

import threading
from datetime import timedelta

import pytest
from protean.exceptions import ValidationError

from checkout.catalog.port import Target, TargetKind
from checkout.errors import InsufficientStock, InvalidLockState, LockNotFound
from checkout.inventory import ledger
from checkout.inventory.lock import LockStatus

RING = Target(TargetKind.VARIANT, "var-ring-7")
CHAIN = Target(TargetKind.PRODUCT, "prod-chain")


@pytest.fixture()
def expires_at(now):
    return now + timedelta(minutes=30)


class TestReserve:
    def test_decrements_stock_and_records_lock(self, catalog, expires_at):
        lock = ledger.reserve(RING, 2, "intent-1", expires_at)

        assert catalog.get_stock(RING) == 3
        stored = ledger.get_lock(lock.id)
        assert stored.lock_status == LockStatus.LOCKED
        assert stored.quantity_locked == 2
        assert stored.target == RING

    def test_product_targets_are_reserved_against_product_stock(self, catalog, expires_at):
        ledger.reserve(CHAIN, 4, "intent-1", expires_at)
        assert catalog.get_stock(CHAIN) == 6

    def test_refuses_more_than_available(self, catalog, expires_at):
        with pytest.raises(InsufficientStock) as exc:
            ledger.reserve(RING, 6, "intent-1", expires_at)

        assert exc.value.available == 5
        assert catalog.get_stock(RING) == 5
        assert ledger.locks_for_intent("intent-1") == []

    def test_rejects_non_positive_quantity(self, expires_at):
        with pytest.raises(ValidationError) as exc:
            ledger.reserve(RING, 0, "intent-1", expires_at)
        assert "quantity" in exc.value.messages

    def test_restores_stock_when_lock_cannot_be_recorded(self, catalog, expires_at, monkeypatch):
        def store_down(lock):
            raise ConnectionError("lock store down")

        monkeypatch.setattr(ledger, "persist", store_down)

        with pytest.raises(ConnectionError):
            ledger.reserve(RING, 2, "intent-1", expires_at)
        assert catalog.get_stock(RING) == 5


class TestRelease:
    def test_returns_units_to_stock(self, catalog, expires_at):
        lock = ledger.reserve(RING, 2, "intent-1", expires_at)

        assert ledger.release(lock.id, "cancelled") is True
        assert catalog.get_stock(RING) == 5
        stored = ledger.get_lock(lock.id)
        assert stored.lock_status == LockStatus.RELEASED
        assert stored.release_reason == "cancelled"

    def test_second_release_is_a_no_op(self, catalog, expires_at):
        lock = ledger.reserve(RING, 2, "intent-1", expires_at)
        ledger.release(lock.id, "cancelled")

        assert ledger.release(lock.id, "expired") is False
        assert catalog.get_stock(RING) == 5

    def test_converted_lock_is_never_released(self, catalog, expires_at):
        lock = ledger.reserve(RING, 2, "intent-1", expires_at)
        ledger.convert(lock.id, "order-1")

        assert ledger.release(lock.id, "expired") is False
        assert catalog.get_stock(RING) == 3

    def test_unknown_lock(self):
        with pytest.raises(LockNotFound):
            ledger.release("no-such-lock")


class TestConvert:
    def test_marks_lock_converted_without_touching_stock(self, catalog, expires_at):
        lock = ledger.reserve(RING, 2, "intent-1", expires_at)

        assert ledger.convert(lock.id, "order-1") is True
        stored = ledger.get_lock(lock.id)
        assert stored.lock_status == LockStatus.CONVERTED
        assert str(stored.order_id) == "order-1"
        assert catalog.get_stock(RING) == 3

    def test_repeat_for_same_order_is_a_no_op(self, expires_at):
        lock = ledger.reserve(RING, 1, "intent-1", expires_at)
        ledger.convert(lock.id, "order-1")

        assert ledger.convert(lock.id, "order-1") is False

    def test_released_lock_cannot_be_converted(self, expires_at):
        lock = ledger.reserve(RING, 1, "intent-1", expires_at)
        ledger.release(lock.id, "expired")

        with pytest.raises(InvalidLockState):
            ledger.convert(lock.id, "order-1")

    def test_lock_converted_for_another_order_is_rejected(self, expires_at):
        lock = ledger.reserve(RING, 1, "intent-1", expires_at)
        ledger.convert(lock.id, "order-1")

        with pytest.raises(InvalidLockState):
            ledger.convert(lock.id, "order-2")


class TestQueries:
    def test_locks_for_intent(self, expires_at):
        ledger.reserve(RING, 1, "intent-1", expires_at)
        ledger.reserve(CHAIN, 1, "intent-1", expires_at)
        ledger.reserve(CHAIN, 1, "intent-2", expires_at)

        assert len(ledger.locks_for_intent("intent-1")) == 2

    def test_active_locks_by_target(self, expires_at):
        ledger.reserve(RING, 1, "intent-1", expires_at)
        released = ledger.reserve(RING, 1, "intent-2", expires_at)
        ledger.reserve(CHAIN, 1, "intent-3", expires_at)
        ledger.release(released.id)

        assert len(ledger.active_locks(RING)) == 1
        assert len(ledger.active_locks()) == 2

    def test_available_stock_counts_lapsed_locks(self, now):
        ledger.reserve(RING, 2, "intent-1", now + timedelta(minutes=30))

        assert ledger.available_stock(RING, now) == 3
        assert ledger.available_stock(RING, now + timedelta(minutes=31)) == 5

    def test_lapsed_locks(self, now):
        ledger.reserve(RING, 1, "intent-1", now + timedelta(minutes=5))
        ledger.reserve(RING, 1, "intent-2", now + timedelta(minutes=30))

        lapsed = ledger.lapsed_locks(now + timedelta(minutes=10), RING)
        assert [str(lock.intent_id) for lock in lapsed] == ["intent-1"]


class TestCatalogCompareAndSwap:
    def test_concurrent_decrements_never_oversell(self, catalog):
        catalog.set_stock(RING, 5)
        results = []
        start = threading.Barrier(20)

        def attempt():
            start.wait()
            results.append(catalog.conditional_adjust_stock(RING, -1))

        threads = [threading.Thread(target=attempt) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 5
        assert catalog.get_stock(RING) == 0

    def test_restore_ignores_the_floor(self, catalog):
        catalog.set_stock(RING, 0)
        assert catalog.conditional_adjust_stock(RING, 3, require_floor_zero=False)
        assert catalog.get_stock(RING) == 3
