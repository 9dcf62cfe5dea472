"""Transition tables for OrderIntent and InventoryLock, tested without storage."""

import pytest

from checkout.intent.intent import IntentStatus
from checkout.intent.intent import can_transition as intent_can_transition
from checkout.inventory.lock import LockStatus
from checkout.inventory.lock import can_transition as lock_can_transition


class TestIntentTransitions:
    @pytest.mark.parametrize(
        "target",
        [IntentStatus.CONVERTED, IntentStatus.CANCELLED, IntentStatus.EXPIRED],
    )
    def test_open_intent_can_reach_every_terminal_state(self, target):
        assert intent_can_transition(IntentStatus.INTENT_CREATED, target)

    @pytest.mark.parametrize(
        "terminal",
        [IntentStatus.CONVERTED, IntentStatus.CANCELLED, IntentStatus.EXPIRED],
    )
    def test_terminal_states_have_no_exits(self, terminal):
        assert not any(intent_can_transition(terminal, target) for target in IntentStatus)

    def test_open_intent_cannot_transition_to_itself(self):
        assert not intent_can_transition(IntentStatus.INTENT_CREATED, IntentStatus.INTENT_CREATED)


class TestLockTransitions:
    def test_locked_can_be_released(self):
        assert lock_can_transition(LockStatus.LOCKED, LockStatus.RELEASED)

    def test_locked_can_be_converted(self):
        assert lock_can_transition(LockStatus.LOCKED, LockStatus.CONVERTED)

    def test_released_is_terminal(self):
        assert not lock_can_transition(LockStatus.RELEASED, LockStatus.CONVERTED)
        assert not lock_can_transition(LockStatus.RELEASED, LockStatus.LOCKED)

    def test_converted_is_terminal(self):
        assert not lock_can_transition(LockStatus.CONVERTED, LockStatus.RELEASED)
        assert not lock_can_transition(LockStatus.CONVERTED, LockStatus.LOCKED)
