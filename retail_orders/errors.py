"""
Failures raised by the order lifecycle manager and its storage collaborators.
"""
from retail_orders.order_state import OrderStatus


class OrderError(Exception):
    """Base class for order lifecycle failures."""


class OrderNotFoundError(OrderError):
    """Raised when no order exists for the given key."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class InvalidTransitionError(OrderError):
    """Raised when the target status is not reachable from the current status. Nothing is written."""
    def __init__(self, current_status: OrderStatus | str | None, target_status: OrderStatus | str):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot change status from {_label(current_status)} to {_label(target_status)}"
        )


class ConcurrentModificationError(OrderError):
    """Raised when the stored order changed between read and conditional write."""
    def __init__(self, order_id: str, expected_version: int | None = None):
        self.order_id = order_id
        self.expected_version = expected_version
        super().__init__(f"Order {order_id} was modified concurrently")


class DuplicateOrderError(OrderError):
    """Raised when inserting an order whose key already exists."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already exists")


class StorageError(OrderError):
    """The storage collaborator failed. Propagated, not retried."""


def _label(status: OrderStatus | str | None) -> str:
    if isinstance(status, OrderStatus):
        return status.value
    return str(status)
