"""
Transition table tests: every table edge is allowed, everything else is rejected.
"""
import itertools

import pytest

from retail_orders.order_state import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    OrderStatus,
    allowed_next,
    badge_class,
    is_terminal,
    is_valid_transition,
)

EXPECTED_EDGES = {
    ("Pending", "Processing"),
    ("Pending", "Cancelled"),
    ("Processing", "Shipped"),
    ("Processing", "Cancelled"),
    ("Shipped", "Delivered"),
    ("Shipped", "Returned"),
    ("Delivered", "Completed"),
    ("Delivered", "Returned"),
    ("Returned", "Refunded"),
}


@pytest.mark.parametrize("current,target", sorted(EXPECTED_EDGES))
def test_table_edges_are_allowed(current, target):
    assert is_valid_transition(current, target)
    assert is_valid_transition(OrderStatus(current), OrderStatus(target))


def test_pairs_outside_table_are_rejected():
    for current, target in itertools.product(OrderStatus, repeat=2):
        if (current.value, target.value) in EXPECTED_EDGES:
            continue
        assert not is_valid_transition(current, target), f"{current} -> {target} should be rejected"


@pytest.mark.parametrize("status", list(OrderStatus))
def test_no_self_loops(status):
    assert not is_valid_transition(status, status)


def test_unknown_statuses_have_no_outgoing_edges():
    assert not is_valid_transition("Archived", "Pending")
    assert not is_valid_transition(None, "Pending")
    assert not is_valid_transition("Pending", "Archived")
    assert allowed_next("Archived") == frozenset()


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    assert is_terminal("Completed")
    assert not is_terminal(OrderStatus.RETURNED)


def test_table_covers_every_status_and_is_read_only():
    assert set(VALID_TRANSITIONS) == set(OrderStatus)
    with pytest.raises(TypeError):
        VALID_TRANSITIONS[OrderStatus.COMPLETED] = frozenset({OrderStatus.PENDING})


def test_badge_classes():
    assert badge_class(OrderStatus.PENDING) == "badge badge-warning"
    assert badge_class("Delivered") == badge_class("Completed") == "badge badge-success"
    assert badge_class("Refunded") == "badge badge-dark"
    assert badge_class("Archived") == "badge badge-light"
