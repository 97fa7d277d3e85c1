"""
Async Postgres order store: one row per order, version column for conditional writes.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
from asyncpg.exceptions import UniqueViolationError

from retail_orders.errors import (
    ConcurrentModificationError,
    DuplicateOrderError,
    OrderNotFoundError,
    StorageError,
)
from retail_orders.models import Order
from retail_orders.order_state import OrderStatus

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None

_COLUMNS = "order_id, customer_id, product_id, quantity, total_amount, order_date, status, version"


async def get_pool(database_url: str) -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            database_url,
            min_size=1,
            max_size=5,
            command_timeout=60,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
                order_id VARCHAR(64) PRIMARY KEY,
                customer_id VARCHAR(255) NOT NULL,
                product_id VARCHAR(255) NOT NULL,
                quantity INT NOT NULL CHECK (quantity > 0),
                total_amount NUMERIC(12, 2) NOT NULL CHECK (total_amount >= 0),
                order_date TIMESTAMPTZ NOT NULL,
                status VARCHAR(20) NOT NULL,
                version INT NOT NULL DEFAULT 1,
                updated_at TIMESTAMPTZ DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_orders_status
            ON orders(status);
        """)


def _row_to_order(row: asyncpg.Record) -> Order:
    return Order(
        id=row["order_id"],
        customer_id=row["customer_id"],
        product_id=row["product_id"],
        quantity=row["quantity"],
        total_amount=row["total_amount"],
        order_date=row["order_date"],
        status=row["status"],
        version=row["version"],
    )


@asynccontextmanager
async def _storage_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.error("Order store %s failed: %s", action, e)
        raise StorageError(f"Order store {action} failed: {e}") from e


class PostgresOrderStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get(self, order_id: str) -> Order | None:
        async with _storage_errors("get"):
            row = await self.pool.fetchrow(
                f"SELECT {_COLUMNS} FROM orders WHERE order_id = $1;",
                order_id,
            )
        return _row_to_order(row) if row is not None else None

    async def put(self, order: Order) -> Order:
        """
        Full-record overwrite guarded by the version token.
        No row updated means the order vanished or another writer got there first.
        """
        async with _storage_errors("put"):
            row = await self.pool.fetchrow(
                f"""
                UPDATE orders
                SET customer_id = $2, product_id = $3, quantity = $4, total_amount = $5,
                    order_date = $6, status = $7, version = version + 1, updated_at = NOW()
                WHERE order_id = $1 AND version = $8
                RETURNING {_COLUMNS};
                """,
                order.id,
                order.customer_id,
                order.product_id,
                order.quantity,
                order.total_amount,
                order.order_date,
                order.status.value,
                order.version,
            )
            if row is None:
                exists = await self.pool.fetchval(
                    "SELECT 1 FROM orders WHERE order_id = $1;",
                    order.id,
                )
        if row is None:
            if exists is None:
                raise OrderNotFoundError(order.id)
            raise ConcurrentModificationError(order.id, expected_version=order.version)
        return _row_to_order(row)

    async def insert(self, order: Order) -> Order:
        async with _storage_errors("insert"):
            try:
                row = await self.pool.fetchrow(
                    f"""
                    INSERT INTO orders ({_COLUMNS}, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, 1, NOW())
                    RETURNING {_COLUMNS};
                    """,
                    order.id,
                    order.customer_id,
                    order.product_id,
                    order.quantity,
                    order.total_amount,
                    order.order_date,
                    order.status.value,
                )
            except UniqueViolationError:
                raise DuplicateOrderError(order.id)
        return _row_to_order(row)

    async def delete(self, order_id: str) -> bool:
        async with _storage_errors("delete"):
            result = await self.pool.execute(
                "DELETE FROM orders WHERE order_id = $1;",
                order_id,
            )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return result.split()[-1] != "0"

    async def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        async with _storage_errors("list"):
            if status is None:
                rows = await self.pool.fetch(
                    f"SELECT {_COLUMNS} FROM orders ORDER BY order_date DESC;"
                )
            else:
                rows = await self.pool.fetch(
                    f"SELECT {_COLUMNS} FROM orders WHERE status = $1 ORDER BY order_date DESC;",
                    status.value,
                )
        return [_row_to_order(r) for r in rows]

    async def close(self) -> None:
        if self.pool is _pool:
            await close_pool()
        else:
            await self.pool.close()
