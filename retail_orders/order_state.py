"""
Order lifecycle state machine. Valid transitions enforce business rules.
"""
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    RETURNED = "Returned"
    REFUNDED = "Refunded"

    def __str__(self) -> str:
        return self.value


# Current status -> allowed next statuses
VALID_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType({
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.RETURNED}),
    OrderStatus.COMPLETED: frozenset(),  # terminal
    OrderStatus.CANCELLED: frozenset(),  # terminal
    OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),  # terminal
})

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    status for status, allowed in VALID_TRANSITIONS.items() if not allowed
)

STATUS_BADGE_CLASSES: Mapping[OrderStatus, str] = MappingProxyType({
    OrderStatus.PENDING: "badge badge-warning",
    OrderStatus.PROCESSING: "badge badge-info",
    OrderStatus.SHIPPED: "badge badge-primary",
    OrderStatus.DELIVERED: "badge badge-success",
    OrderStatus.COMPLETED: "badge badge-success",
    OrderStatus.CANCELLED: "badge badge-danger",
    OrderStatus.RETURNED: "badge badge-secondary",
    OrderStatus.REFUNDED: "badge badge-dark",
})
DEFAULT_BADGE_CLASS = "badge badge-light"


def _coerce(status: "OrderStatus | str | None") -> OrderStatus | None:
    if isinstance(status, OrderStatus):
        return status
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def allowed_next(current_status: OrderStatus | str | None) -> frozenset[OrderStatus]:
    """Statuses reachable from current_status. Unknown statuses have no outgoing edges."""
    current = _coerce(current_status)
    if current is None:
        return frozenset()
    return VALID_TRANSITIONS[current]


def is_valid_transition(current_status: OrderStatus | str | None, target_status: OrderStatus | str) -> bool:
    """True if target_status is allowed after current_status."""
    target = _coerce(target_status)
    return target is not None and target in allowed_next(current_status)


def is_terminal(status: OrderStatus | str) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def badge_class(status: OrderStatus | str | None) -> str:
    current = _coerce(status)
    if current is None:
        return DEFAULT_BADGE_CLASS
    return STATUS_BADGE_CLASSES.get(current, DEFAULT_BADGE_CLASS)
