from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import Response

from retail_orders.config import settings
from retail_orders.lifecycle import OrderLifecycleManager
from retail_orders.metrics import get_metrics_bytes, get_metrics_content_type, sqs_queue_messages_in_flight, sqs_queue_messages_waiting
from retail_orders.redis_client import close_redis
from retail_orders.routes import admin, orders
from retail_orders.sqs_client import get_queue_depth
from retail_orders.store import create_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = await create_store(settings)
    app.state.manager = OrderLifecycleManager(store)
    try:
        yield
    finally:
        try:
            await store.close()
        finally:
            await close_redis()


app = FastAPI(title="Retail Orders", lifespan=lifespan)
app.include_router(orders.router)
app.include_router(admin.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus scrape endpoint: order lifecycle counters, SQS queue depth (when using SQS)."""
    if settings.sqs_queue_url:
        waiting, in_flight = await get_queue_depth()
        sqs_queue_messages_waiting.set(waiting)
        sqs_queue_messages_in_flight.set(in_flight)
    return Response(
        content=get_metrics_bytes(),
        media_type=get_metrics_content_type(),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
