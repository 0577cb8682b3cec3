import pytest

from app.payouts import model as pm
from app.payouts.state_machine import (
    InvalidTransition,
    assert_completed_invariant,
    assert_transition,
    sources_for,
)


def test_valid_transitions():
    assert_transition("pending", "processing")
    assert_transition("pending", "rejected")
    assert_transition("pending", "completed")
    assert_transition("processing", "completed")
    assert_transition("processing", "rejected")


def test_invalid_transition_backwards():
    with pytest.raises(InvalidTransition):
        assert_transition("processing", "pending")


def test_terminal_states_cannot_transition():
    with pytest.raises(InvalidTransition):
        assert_transition("completed", "rejected")
    with pytest.raises(InvalidTransition):
        assert_transition("rejected", "completed")
    with pytest.raises(InvalidTransition):
        assert_transition("completed", "processing")


def test_sources_for_completed_are_open_states():
    assert set(sources_for(pm.COMPLETED)) == set(pm.OPEN_STATUSES)
    assert sources_for(pm.PROCESSING) == (pm.PENDING,)
    assert sources_for(pm.PENDING) == ()


def test_completed_requires_transaction_reference():
    with pytest.raises(ValueError):
        assert_completed_invariant(pm.COMPLETED, None)
    with pytest.raises(ValueError):
        assert_completed_invariant(pm.COMPLETED, "   ")
    assert_completed_invariant(pm.COMPLETED, "UTR123")
    assert_completed_invariant(pm.REJECTED, None)
