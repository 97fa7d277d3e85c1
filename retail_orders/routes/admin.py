from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from retail_orders.queue import replay_dlq

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/dlq/replay")
async def dlq_replay(limit: int = Query(default=100, ge=1, le=1000)) -> JSONResponse:
    """
    Replay dead-lettered order submissions to the main intake queue (SQS or Redis).
    Returns number of messages replayed.
    """
    replayed = await replay_dlq(limit=limit)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "replayed": replayed},
    )
