"""Compensation stack: reverse unwinding on failure, nothing on success."""

import pytest

from checkout.errors import InsufficientStock
from checkout.saga import CompensationStack


class TestCompensationStack:
    def test_unwinds_in_reverse_order_on_failure(self):
        undone = []
        with pytest.raises(RuntimeError):
            with CompensationStack("test") as saga:
                saga.push("first", undone.append, "first")
                saga.push("second", undone.append, "second")
                raise RuntimeError("boom")

        assert undone == ["second", "first"]

    def test_discard_means_nothing_is_undone(self):
        undone = []
        with CompensationStack("test") as saga:
            saga.push("first", undone.append, "first")
            saga.discard()

        assert undone == []
        assert len(saga) == 0

    def test_failure_before_any_push_is_reraised(self):
        with pytest.raises(ValueError):
            with CompensationStack("test"):
                raise ValueError("nothing to undo")

    def test_failing_compensator_does_not_stop_the_rest(self):
        undone = []

        def broken():
            raise ConnectionError("store down")

        with pytest.raises(RuntimeError):
            with CompensationStack("test") as saga:
                saga.push("first", undone.append, "first")
                saga.push("broken", broken)
                saga.push("third", undone.append, "third")
                raise RuntimeError("boom")

        assert undone == ["third", "first"]
        assert saga.failed == ["broken"]

    def test_failed_steps_are_attached_to_checkout_errors(self):
        def broken():
            raise ConnectionError("store down")

        with pytest.raises(InsufficientStock) as exc:
            with CompensationStack("test") as saga:
                saga.push("release lock", broken)
                raise InsufficientStock("variant:v1", 2, 1)

        assert exc.value.details["rollback_failed_steps"] == ["release lock"]
