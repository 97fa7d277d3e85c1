"""
HTTP API tests using FastAPI's TestClient with the in-memory store.
"""
import json

import pytest

import retail_orders.queue as order_queue

DRAFT = {
    "customer_id": "CUST-123",
    "product_id": "PROD-42",
    "quantity": 2,
    "total_amount": "199.98",
}


def _create(client) -> dict:
    resp = client.post("/orders", json=DRAFT)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_get_order(client):
    created = _create(client)
    assert created["status"] == "Pending"
    assert created["quantity"] == 2

    resp = client.get(f"/orders/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]


@pytest.mark.parametrize("field,value", [("quantity", 0), ("total_amount", "0"), ("customer_id", "")])
def test_create_rejects_invalid_draft(client, field, value):
    resp = client.post("/orders", json={**DRAFT, field: value})
    assert resp.status_code == 422


def test_get_missing_order(client):
    assert client.get("/orders/nope").status_code == 404


def test_change_status(client):
    order = _create(client)

    resp = client.post(f"/orders/{order['id']}/status", json={"status": "Processing"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "Processing"


def test_invalid_transition_message(client):
    order = _create(client)
    oid = order["id"]
    for status in ("Processing", "Shipped"):
        assert client.post(f"/orders/{oid}/status", json={"status": status}).status_code == 200

    resp = client.post(f"/orders/{oid}/status", json={"status": "Pending"})

    assert resp.status_code == 409
    assert resp.json()["detail"] == "Cannot change status from Shipped to Pending"
    assert client.get(f"/orders/{oid}").json()["status"] == "Shipped"


def test_change_status_of_missing_order(client):
    resp = client.post("/orders/nope/status", json={"status": "Processing"})
    assert resp.status_code == 404


def test_change_status_to_unknown_status(client):
    order = _create(client)
    resp = client.post(f"/orders/{order['id']}/status", json={"status": "Archived"})
    assert resp.status_code == 422


def test_list_orders_with_status_filter(client):
    a = _create(client)
    _create(client)
    client.post(f"/orders/{a['id']}/status", json={"status": "Cancelled"})

    assert len(client.get("/orders").json()) == 2
    cancelled = client.get("/orders", params={"status": "Cancelled"}).json()
    assert [o["id"] for o in cancelled] == [a["id"]]
    assert client.get("/orders", params={"status": "Archived"}).status_code == 422


def test_patch_cannot_change_status(client):
    order = _create(client)

    resp = client.patch(f"/orders/{order['id']}", json={"quantity": 5})
    assert resp.status_code == 200
    assert resp.json()["quantity"] == 5

    resp = client.patch(f"/orders/{order['id']}", json={"status": "Completed"})
    assert resp.status_code == 422


def test_delete_order(client):
    order = _create(client)

    assert client.delete(f"/orders/{order['id']}").status_code == 204
    assert client.get(f"/orders/{order['id']}").status_code == 404
    assert client.delete(f"/orders/{order['id']}").status_code == 404


def test_statuses_endpoint(client):
    statuses = {s["status"]: s for s in client.get("/orders/statuses").json()}

    assert set(statuses) == {
        "Pending", "Processing", "Shipped", "Delivered",
        "Completed", "Cancelled", "Returned", "Refunded",
    }
    assert statuses["Pending"]["allowed_next"] == ["Processing", "Cancelled"]
    assert statuses["Completed"]["terminal"] is True
    assert statuses["Completed"]["allowed_next"] == []
    assert statuses["Returned"]["badge"] == "badge badge-secondary"


def test_submit_enqueues_pending_order(client, monkeypatch):
    pushed = []

    async def fake_push(body):
        pushed.append(body)

    monkeypatch.setattr(order_queue, "push_to_queue", fake_push)

    resp = client.post("/orders/submit", json=DRAFT)

    assert resp.status_code == 202
    body = resp.json()
    assert body["status"] == "Pending"
    assert len(pushed) == 1
    assert pushed[0]["order_id"] == body["id"]
    assert pushed[0]["draft"]["total_amount"] == "199.98"
    assert pushed[0]["attempts"] == 0
    json.dumps(pushed[0])
    # Not stored until the worker processes it
    assert client.get(f"/orders/{body['id']}").status_code == 404


def test_metrics_endpoint(client):
    _create(client)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "orders_created_total" in resp.text


def test_admin_dlq_replay(client, monkeypatch):
    replayed_limits = []

    async def fake_replay(limit):
        replayed_limits.append(limit)
        return 2

    monkeypatch.setattr("retail_orders.routes.admin.replay_dlq", fake_replay)

    resp = client.post("/admin/dlq/replay", params={"limit": 5})

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "replayed": 2}
    assert replayed_limits == [5]
    assert client.post("/admin/dlq/replay", params={"limit": 0}).status_code == 422


async def test_shutdown_closes_redis_even_if_store_close_fails(monkeypatch):
    import retail_orders.main as main
    from retail_orders.store import InMemoryOrderStore

    closed = []

    class BrokenCloseStore(InMemoryOrderStore):
        async def close(self):
            raise ConnectionError("pool already gone")

    async def fake_create_store(config):
        return BrokenCloseStore()

    async def fake_close_redis():
        closed.append("redis")

    monkeypatch.setattr(main, "create_store", fake_create_store)
    monkeypatch.setattr(main, "close_redis", fake_close_redis)

    with pytest.raises(ConnectionError):
        async with main.lifespan(main.app):
            pass

    assert closed == ["redis"]
