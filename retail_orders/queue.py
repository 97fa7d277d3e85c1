"""
Order intake queue. Backend: Redis (LPUSH) or AWS SQS when SQS_QUEUE_URL is set.
A message carries the draft plus the key and date assigned at submission, so
redelivery always targets the same order.
"""
import json
import logging
from datetime import datetime

from retail_orders.config import settings
from retail_orders.lifecycle import build_order
from retail_orders.models import Order, OrderDraft
from retail_orders.redis_client import get_redis
from retail_orders.sqs_client import replay_dlq_to_main, send_message

ORDER_QUEUE_KEY = "queue:orders"
ORDER_DLQ_KEY = "queue:orders:dlq"

logger = logging.getLogger(__name__)


def make_body(order: Order, attempts: int = 0) -> dict:
    return {
        "order_id": order.id,
        "order_date": order.order_date.isoformat(),
        "draft": {
            "customer_id": order.customer_id,
            "product_id": order.product_id,
            "quantity": order.quantity,
            "total_amount": str(order.total_amount),
        },
        "attempts": attempts,
    }


def parse_body(data: dict) -> tuple[str, datetime, OrderDraft]:
    """Raises KeyError / TypeError / ValueError (incl. pydantic ValidationError) on malformed messages."""
    if not isinstance(data, dict):
        raise TypeError("message is not a JSON object")
    order_id = data["order_id"]
    if not isinstance(order_id, str) or not order_id:
        raise ValueError("message order_id must be a non-empty string")
    order_date = datetime.fromisoformat(data["order_date"])
    draft = OrderDraft.model_validate(data["draft"])
    return order_id, order_date, draft


async def push_to_queue(body: dict) -> None:
    if settings.sqs_queue_url:
        await send_message(body)
    else:
        r = await get_redis()
        await r.lpush(ORDER_QUEUE_KEY, json.dumps(body))


async def submit_order(draft: OrderDraft) -> Order:
    """Assign key and date now, enqueue for the worker, and return the pending order."""
    order = build_order(draft)
    await push_to_queue(make_body(order))
    return order


def _replayable(raw: str) -> dict | None:
    """DLQ entry ready for the main queue (attempts reset), or None if it is not a valid submission."""
    try:
        data = json.loads(raw)
        parse_body(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Dropping malformed DLQ message %.200r: %s", raw, e)
        return None
    body = {k: v for k, v in data.items() if k not in ("last_error", "failed_at")}
    body["attempts"] = 0
    return body


async def replay_dlq(limit: int = 100) -> int:
    """
    Move up to `limit` dead-lettered messages back onto the main queue with attempts reset.
    Malformed entries are logged and dropped. Returns number of DLQ entries handled.
    """
    if settings.sqs_queue_url:
        return await replay_dlq_to_main(limit=limit)
    r = await get_redis()
    replayed = 0
    while replayed < limit:
        raw = await r.rpop(ORDER_DLQ_KEY)
        if raw is None:
            break
        replayed += 1
        body = _replayable(raw)
        if body is None:
            continue
        try:
            await r.lpush(ORDER_QUEUE_KEY, json.dumps(body))
        except Exception:
            # Put it back at the tail so the next replay picks it up first
            await r.rpush(ORDER_DLQ_KEY, raw)
            raise
    return replayed
