"""
Storage collaborators for orders. Every write is conditional on the order's version token.
"""
import logging
from typing import Protocol

from retail_orders.config import Settings
from retail_orders.db import PostgresOrderStore, get_pool, init_schema
from retail_orders.errors import ConcurrentModificationError, DuplicateOrderError, OrderNotFoundError
from retail_orders.models import Order
from retail_orders.order_state import OrderStatus

logger = logging.getLogger(__name__)


class OrderStore(Protocol):
    async def get(self, order_id: str) -> Order | None: ...

    async def put(self, order: Order) -> Order:
        """Overwrite the full record if the stored version equals order.version. Returns the stored order."""
        ...

    async def insert(self, order: Order) -> Order: ...

    async def delete(self, order_id: str) -> bool: ...

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]: ...

    async def close(self) -> None: ...


class InMemoryOrderStore:
    """
    Dict-backed store. Compare-and-write has no await point, so it is atomic
    within one event loop.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    async def get(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return order.model_copy() if order is not None else None

    async def put(self, order: Order) -> Order:
        current = self._orders.get(order.id)
        if current is None:
            raise OrderNotFoundError(order.id)
        if current.version != order.version:
            raise ConcurrentModificationError(order.id, expected_version=order.version)
        stored = order.model_copy(update={"version": order.version + 1})
        self._orders[order.id] = stored
        return stored.model_copy()

    async def insert(self, order: Order) -> Order:
        if order.id in self._orders:
            raise DuplicateOrderError(order.id)
        stored = order.model_copy(update={"version": 1})
        self._orders[order.id] = stored
        return stored.model_copy()

    async def delete(self, order_id: str) -> bool:
        return self._orders.pop(order_id, None) is not None

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        orders = [o for o in self._orders.values() if status is None or o.status == status]
        orders.sort(key=lambda o: o.order_date, reverse=True)
        return [o.model_copy() for o in orders]

    async def close(self) -> None:
        self._orders.clear()


async def create_store(config: Settings) -> OrderStore:
    """Build the store selected by ORDER_STORE."""
    if config.order_store == "memory":
        logger.info("Using in-memory order store")
        return InMemoryOrderStore()
    pool = await get_pool(config.database_url)
    await init_schema(pool)
    logger.info("Using Postgres order store")
    return PostgresOrderStore(pool)
