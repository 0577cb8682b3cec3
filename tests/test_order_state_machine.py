import pytest

from app.orders import model as om
from app.orders.state_machine import InvalidTransition, assert_transition, can_transition, sources_for


def test_payment_path():
    assert_transition(om.CREATED, om.PENDING)
    assert_transition(om.CREATED, om.PAID)
    assert_transition(om.PENDING, om.PAID)


def test_fulfillment_outcomes_only_from_paid():
    assert_transition(om.PAID, om.DELIVERED)
    assert_transition(om.PAID, om.FAILED)
    assert not can_transition(om.CREATED, om.DELIVERED)
    assert not can_transition(om.PENDING, om.FAILED)


def test_refund_reachable_from_every_non_refunded_state():
    for status in (om.CREATED, om.PENDING, om.PAID, om.DELIVERED, om.FAILED):
        assert can_transition(status, om.REFUNDED)


def test_refunded_is_terminal():
    for target in (om.CREATED, om.PENDING, om.PAID, om.DELIVERED, om.FAILED, om.REFUNDED):
        with pytest.raises(InvalidTransition):
            assert_transition(om.REFUNDED, target)


def test_delivered_cannot_go_back_to_paid():
    with pytest.raises(InvalidTransition):
        assert_transition(om.DELIVERED, om.PAID)


def test_sources_for_paid():
    assert set(sources_for(om.PAID)) == {om.CREATED, om.PENDING}
