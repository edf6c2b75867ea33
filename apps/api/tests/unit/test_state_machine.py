import pytest

from canteen.errors import InvalidTransitionError
from canteen.models.order import OrderStatus
from canteen.services.state_machine import (
    Actor,
    allowed_targets,
    can_transition,
    customer_label,
    ensure_deletable,
    ensure_valid_transition,
)

P, A, C, X = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
)


def test_staff_transition_table():
    assert allowed_targets(P, Actor.STAFF) == {A, X}
    assert allowed_targets(A, Actor.STAFF) == {C, P, X}
    assert allowed_targets(C, Actor.STAFF) == frozenset()
    assert allowed_targets(X, Actor.STAFF) == {A}


def test_completed_is_terminal_for_staff_but_not_admin():
    assert not can_transition(C, A, Actor.STAFF)
    assert allowed_targets(C, Actor.ADMIN) == {P, A, X}


def test_admin_inherits_staff_moves():
    for current in (P, A, X):
        assert allowed_targets(current, Actor.ADMIN) == allowed_targets(current, Actor.STAFF)


@pytest.mark.parametrize("current", list(OrderStatus))
def test_customers_cannot_move_orders(current):
    assert allowed_targets(current, Actor.CUSTOMER) == frozenset()


@pytest.mark.parametrize("current", list(OrderStatus))
def test_same_status_is_never_a_transition(current):
    for actor in Actor:
        assert not can_transition(current, current, actor)


def test_pending_cannot_skip_to_completed():
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_valid_transition(P, C, Actor.STAFF)

    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "INVALID_TRANSITION"
    assert exc_info.value.message == "Invalid state transition: pending -> completed"
    assert (exc_info.value.current, exc_info.value.target) == ("pending", "completed")


def test_customer_labels():
    assert customer_label(P) == "awaiting confirmation"
    assert customer_label(A) == "in preparation"
    assert customer_label(C) == "done"
    assert customer_label(X) == "cancelled"


def test_only_cancelled_orders_are_deletable():
    ensure_deletable(OrderStatus.CANCELLED)

    for current in (OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.COMPLETED):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_deletable(current)
        assert exc_info.value.target == "deleted"
