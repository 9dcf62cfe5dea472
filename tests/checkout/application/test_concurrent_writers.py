"""Real threads racing for the same rows: one winner, stock returned once."""

import threading
from datetime import timedelta

import pytest

from checkout.catalog.port import Target, TargetKind
from checkout.discount import coordinator
from checkout.discount.discount import find_by_code
from checkout.errors import DiscountInvalid
from checkout.intent import lifecycle
from checkout.intent.intent import IntentStatus
from checkout.intent.revalidation import CartLine
from checkout.inventory import ledger
from checkout.inventory.lock import LockStatus
from checkout.utils.store import save_if_current

RING = Target(TargetKind.VARIANT, "var-ring-7")
CHAIN = Target(TargetKind.PRODUCT, "prod-chain")

WORKERS = 16


@pytest.fixture()
def race(_checkout_domain):
    """Run ``action(i)`` on WORKERS threads released together, each in its own domain context."""

    def run(action, workers=WORKERS):
        start = threading.Barrier(workers)
        results, errors = [], []

        def worker(i):
            with _checkout_domain.domain_context():
                start.wait()
                try:
                    results.append(action(i))
                except Exception as exc:
                    errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    return run


def _restores(catalog, target):
    return [delta for kind, delta, _ in catalog.adjustments if kind == target and delta > 0]


class TestConcurrentExpiry:
    def test_lapsed_intent_returns_stock_once(self, create_intent, catalog, race, now):
        line = CartLine(product_id="prod-ring", variant_id="var-ring-7", quantity=3, unit_price=1000.0)
        intent = create_intent(lines=[line])
        assert catalog.get_stock(RING) == 2

        _, errors = race(lambda i: lifecycle.expire_intent(intent.id, now + timedelta(hours=1)))

        assert errors == []
        assert catalog.get_stock(RING) == 5
        assert _restores(catalog, RING) == [3]
        assert lifecycle.load(intent.id).intent_status == IntentStatus.EXPIRED


class TestConcurrentRelease:
    def test_only_one_release_wins(self, catalog, race, now):
        lock = ledger.reserve(RING, 3, "intent-1", now + timedelta(minutes=30))

        results, errors = race(lambda i: ledger.release(lock.id, "cancelled"))

        assert errors == []
        assert results.count(True) == 1
        assert catalog.get_stock(RING) == 5
        assert ledger.get_lock(lock.id).lock_status == LockStatus.RELEASED

    def test_reservations_on_one_target_are_all_recorded(self, catalog, race, now):
        expires_at = now + timedelta(minutes=30)
        _, errors = race(lambda i: ledger.reserve(CHAIN, 1, f"intent-{i}", expires_at), workers=10)

        assert errors == []
        assert catalog.get_stock(CHAIN) == 0
        assert len(ledger.active_locks(CHAIN)) == 10


class TestConcurrentDiscountLock:
    def test_code_is_held_by_exactly_one_checkout(self, make_discount, race, now):
        discount = make_discount(code="SAVE10")

        until = now + timedelta(minutes=30)
        results, errors = race(lambda i: coordinator.lock(discount.id, f"intent-{i}", until, now))

        assert len(results) == 1
        assert len(errors) == WORKERS - 1
        assert all(isinstance(exc, DiscountInvalid) for exc in errors)
        assert all(coordinator.IN_USE in exc.reasons for exc in errors)
        assert str(find_by_code("SAVE10").locked_by_intent_id) == str(results[0].locked_by_intent_id)


class TestConditionalSave:
    def test_stale_copy_is_refused(self, now):
        lock = ledger.reserve(RING, 1, "intent-1", now + timedelta(minutes=30))
        stale = ledger.get_lock(lock.id)
        ledger.release(lock.id, "cancelled")

        stale.convert("order-1")
        assert save_if_current(stale) is False
        assert ledger.get_lock(lock.id).lock_status == LockStatus.RELEASED

    def test_writes_after_a_refused_save_are_committed(self, _checkout_domain, now):
        lock = ledger.reserve(RING, 1, "intent-1", now + timedelta(minutes=30))
        stale = ledger.get_lock(lock.id)
        ledger.release(lock.id, "cancelled")
        stale.convert("order-1")
        save_if_current(stale)

        later = ledger.reserve(RING, 1, "intent-2", now + timedelta(minutes=30))

        seen = []

        def read_elsewhere():
            with _checkout_domain.domain_context():
                seen.extend(ledger.locks_for_intent("intent-2"))

        reader = threading.Thread(target=read_elsewhere)
        reader.start()
        reader.join()
        assert [str(found.id) for found in seen] == [str(later.id)]
