"""Pytest configuration and fixtures."""
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from retail_orders.config import settings
from retail_orders.lifecycle import OrderLifecycleManager
from retail_orders.models import OrderDraft
from retail_orders.store import InMemoryOrderStore


class RecordingStore(InMemoryOrderStore):
    """In-memory store that records calls, to assert on reads and writes."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def get(self, order_id):
        self.calls.append("get")
        return await super().get(order_id)

    async def put(self, order):
        self.calls.append("put")
        return await super().put(order)

    async def insert(self, order):
        self.calls.append("insert")
        return await super().insert(order)

    @property
    def writes(self) -> list[str]:
        return [c for c in self.calls if c in ("put", "insert")]


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def manager(store):
    return OrderLifecycleManager(store)


@pytest.fixture
def draft():
    return OrderDraft(
        customer_id="CUST-123",
        product_id="PROD-42",
        quantity=2,
        total_amount=Decimal("199.98"),
    )


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "order_store", "memory")
    monkeypatch.setattr(settings, "sqs_queue_url", None)
    from retail_orders.main import app

    with TestClient(app) as c:
        yield c
