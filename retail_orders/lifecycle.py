"""
Order lifecycle manager: creates orders and moves them along the transition table.

Stateless; every operation is a read-then-write against the injected store.
Writes are conditional on the version read, so a concurrent writer surfaces as
ConcurrentModificationError instead of a lost update.
"""
import logging
from datetime import datetime
from typing import Mapping

from retail_orders.errors import InvalidTransitionError, OrderNotFoundError
from retail_orders.metrics import order_transitions_rejected_total, order_transitions_total, orders_created_total
from retail_orders.models import Order, OrderDraft, OrderUpdate, new_order_id, utcnow
from retail_orders.order_state import VALID_TRANSITIONS, OrderStatus, allowed_next, is_valid_transition
from retail_orders.store import OrderStore

logger = logging.getLogger(__name__)


def build_order(
    draft: OrderDraft,
    order_id: str | None = None,
    order_date: datetime | None = None,
) -> Order:
    """New Pending order from a validated draft. Fresh key and current time unless given."""
    return Order(
        id=order_id or new_order_id(),
        customer_id=draft.customer_id,
        product_id=draft.product_id,
        quantity=draft.quantity,
        total_amount=draft.total_amount,
        order_date=order_date or utcnow(),
        status=OrderStatus.PENDING,
    )


class OrderLifecycleManager:
    def __init__(self, store: OrderStore):
        self.store = store

    @staticmethod
    def can_transition(current_status: OrderStatus | str | None, target_status: OrderStatus | str) -> bool:
        return is_valid_transition(current_status, target_status)

    @staticmethod
    def allowed_transitions(status: OrderStatus | str) -> frozenset[OrderStatus]:
        return allowed_next(status)

    @staticmethod
    def transition_table() -> Mapping[OrderStatus, frozenset[OrderStatus]]:
        return VALID_TRANSITIONS

    async def create_order(
        self,
        draft: OrderDraft,
        order_id: str | None = None,
        order_date: datetime | None = None,
    ) -> Order:
        """
        Persist a new Pending order. No duplicate detection on content: identical
        drafts give distinct orders. An explicit order_id that already exists
        raises DuplicateOrderError.
        """
        created = await self.store.insert(build_order(draft, order_id, order_date))
        orders_created_total.inc()
        logger.info("Order %s created for customer %s", created.id, created.customer_id)
        return created

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        return await self.store.list_orders(status)

    async def apply_transition(self, order_id: str, target_status: OrderStatus | str) -> Order:
        """
        Move the stored order to target_status.
        Raises OrderNotFoundError or InvalidTransitionError without writing anything.
        """
        order = await self.get_order(order_id)
        current = order.status
        if not self.can_transition(current, target_status):
            order_transitions_rejected_total.labels(
                current_status=current.value,
                attempted_status=str(getattr(target_status, "value", target_status)),
            ).inc()
            logger.info("Rejected transition for order %s: %s -> %s", order_id, current.value, target_status)
            raise InvalidTransitionError(current, target_status)

        target = OrderStatus(target_status)
        updated = await self.store.put(order.model_copy(update={"status": target}))
        order_transitions_total.labels(from_status=current.value, to_status=target.value).inc()
        logger.info("Order %s status %s -> %s", order_id, current.value, target.value)
        return updated

    async def update_order(self, order_id: str, changes: OrderUpdate) -> Order:
        """Edit non-status fields. Status only changes through apply_transition."""
        order = await self.get_order(order_id)
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            return order
        updated = await self.store.put(order.model_copy(update=fields))
        logger.info("Order %s updated: %s", order_id, ", ".join(sorted(fields)))
        return updated

    async def delete_order(self, order_id: str) -> None:
        if not await self.store.delete(order_id):
            raise OrderNotFoundError(order_id)
        logger.info("Order %s deleted", order_id)
