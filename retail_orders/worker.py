"""
Worker: pull order submissions from Redis or AWS SQS and create the orders.
- Redis: exponential backoff + manual DLQ. SQS: don't delete on failure; SQS redrive to DLQ after max receives.
- Prometheus /metrics on port 9090 (worker metrics).
- Graceful shutdown on SIGTERM.
Run: python -m retail_orders.worker
"""
import asyncio
import json
import logging
import signal
import sys
import threading
import time

import redis.asyncio as redis

from retail_orders.config import settings
from retail_orders.errors import DuplicateOrderError
from retail_orders.lifecycle import OrderLifecycleManager
from retail_orders.metrics import messages_dlq_total, messages_failed_total, messages_processed_total
from retail_orders.queue import ORDER_DLQ_KEY, ORDER_QUEUE_KEY, parse_body
from retail_orders.sqs_client import change_message_visibility, delete_message, receive_messages
from retail_orders.store import create_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

BRPOP_TIMEOUT = 5
GRACEFUL_SHUTDOWN_WAIT_SEC = 30
WORKER_METRICS_PORT = 9090


def _start_metrics_server() -> None:
    from prometheus_client import start_http_server
    start_http_server(WORKER_METRICS_PORT)


def decode_message(raw: str) -> dict | None:
    """Parsed message, or None if it is not a JSON object with a valid order submission."""
    try:
        data = json.loads(raw)
        parse_body(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Invalid order message from queue: %s", e)
        return None
    return data


async def handle_order_message(manager: OrderLifecycleManager, data: dict) -> str:
    """
    Create the submitted order. Returns "created" or "duplicate" (redelivery of a stored key).
    Any other failure propagates to the caller for retry.
    """
    order_id, order_date, draft = parse_body(data)
    try:
        await manager.create_order(draft, order_id=order_id, order_date=order_date)
    except DuplicateOrderError:
        logger.info("Duplicate order_id=%s (already stored), skipped", order_id)
        return "duplicate"
    logger.info("Processed order_id=%s", order_id)
    return "created"


async def process_one_redis(
    r: redis.Redis,
    manager: OrderLifecycleManager,
    raw: str,
    sem: asyncio.Semaphore,
) -> None:
    data = decode_message(raw)
    if data is None:
        return
    order_id = data["order_id"]
    attempts = data.get("attempts", 0)

    async with sem:
        try:
            await handle_order_message(manager, data)
            messages_processed_total.inc()
        except Exception as e:
            messages_failed_total.inc()
            logger.exception("Failed to process order_id=%s (attempt %d): %s", order_id, attempts + 1, e)
            next_attempts = attempts + 1
            if next_attempts >= settings.worker_max_retries:
                dlq_message = json.dumps({
                    **data,
                    "attempts": next_attempts,
                    "last_error": str(e),
                    "failed_at": time.time(),
                })
                await r.lpush(ORDER_DLQ_KEY, dlq_message)
                messages_dlq_total.inc()
                logger.warning("Moved order_id=%s to DLQ after %d attempts", order_id, settings.worker_max_retries)
            else:
                backoff_sec = 2 ** attempts
                logger.info("Re-queuing order_id=%s in %ds (attempt %d/%d)", order_id, backoff_sec, next_attempts, settings.worker_max_retries)
                await asyncio.sleep(backoff_sec)
                await r.lpush(ORDER_QUEUE_KEY, json.dumps({**data, "attempts": next_attempts}))


async def process_one_sqs(
    manager: OrderLifecycleManager,
    body: str,
    receipt_handle: str,
    receive_count: int,
    sem: asyncio.Semaphore,
) -> None:
    data = decode_message(body)
    if data is None:
        # Malformed: drop instead of redriving
        await asyncio.to_thread(delete_message, receipt_handle)
        return
    order_id = data["order_id"]

    async with sem:
        try:
            await handle_order_message(manager, data)
            messages_processed_total.inc()
            await asyncio.to_thread(delete_message, receipt_handle)
        except Exception as e:
            messages_failed_total.inc()
            logger.exception("Failed to process order_id=%s (receive #%d): %s", order_id, receive_count, e)
            # Don't delete: message will reappear after visibility timeout; after max receives SQS moves to DLQ
            backoff = min(2 ** receive_count, 900)
            await asyncio.to_thread(change_message_visibility, receipt_handle, backoff)


async def _drain(tasks: set[asyncio.Task]) -> None:
    if not tasks:
        return
    logger.info("Graceful shutdown: waiting for %d in-flight task(s) (max %ds) ...", len(tasks), GRACEFUL_SHUTDOWN_WAIT_SEC)
    _, pending = await asyncio.wait(tasks, timeout=GRACEFUL_SHUTDOWN_WAIT_SEC, return_when=asyncio.ALL_COMPLETED)
    for t in pending:
        t.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


async def run_worker_redis(manager: OrderLifecycleManager, shutdown_event: asyncio.Event) -> None:
    sem = asyncio.Semaphore(settings.worker_concurrency)
    logger.info(
        "Backend=Redis. Listening on %s (concurrency=%d, max_retries=%d) ...",
        ORDER_QUEUE_KEY,
        settings.worker_concurrency,
        settings.worker_max_retries,
    )
    r = redis.from_url(settings.redis_url, decode_responses=True)
    tasks: set[asyncio.Task] = set()
    try:
        while not shutdown_event.is_set():
            result = await r.brpop(ORDER_QUEUE_KEY, timeout=BRPOP_TIMEOUT)
            if result is None:
                continue
            _key, raw = result
            t = asyncio.create_task(process_one_redis(r, manager, raw, sem))
            tasks.add(t)
            t.add_done_callback(tasks.discard)
    finally:
        await _drain(tasks)
        await r.aclose()


async def run_worker_sqs(manager: OrderLifecycleManager, shutdown_event: asyncio.Event) -> None:
    sem = asyncio.Semaphore(settings.worker_concurrency)
    logger.info(
        "Backend=SQS. Queue=%s (concurrency=%d) ...",
        settings.sqs_queue_url,
        settings.worker_concurrency,
    )
    tasks: set[asyncio.Task] = set()
    try:
        while not shutdown_event.is_set():
            messages = await asyncio.to_thread(receive_messages, 10, 5)
            for msg in messages:
                body = msg.get("Body") or "{}"
                receipt = msg.get("ReceiptHandle") or ""
                attrs = msg.get("Attributes") or {}
                receive_count = int(attrs.get("ApproximateReceiveCount", 1))
                t = asyncio.create_task(process_one_sqs(manager, body, receipt, receive_count, sem))
                tasks.add(t)
                t.add_done_callback(tasks.discard)
    finally:
        await _drain(tasks)


async def run_worker(shutdown_event: asyncio.Event) -> None:
    store = await create_store(settings)
    manager = OrderLifecycleManager(store)
    try:
        if settings.sqs_queue_url:
            await run_worker_sqs(manager, shutdown_event)
        else:
            await run_worker_redis(manager, shutdown_event)
    finally:
        await store.close()
        logger.info("Worker stopped.")


def main() -> None:
    threading.Thread(target=_start_metrics_server, daemon=True).start()
    logger.info("Metrics server listening on port %s", WORKER_METRICS_PORT)

    shutdown_event = asyncio.Event()

    def on_signal():
        shutdown_event.set()

    loop = asyncio.new_event_loop()
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, on_signal)
    except NotImplementedError:
        signal.signal(signal.SIGTERM, lambda *a: shutdown_event.set())
        signal.signal(signal.SIGINT, lambda *a: shutdown_event.set())

    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(run_worker(shutdown_event))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
