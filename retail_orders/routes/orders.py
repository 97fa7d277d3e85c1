from fastapi import APIRouter, Depends, HTTPException, Request, Response

from retail_orders.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    OrderNotFoundError,
    StorageError,
)
from retail_orders.lifecycle import OrderLifecycleManager
from retail_orders.metrics import orders_submitted_total
from retail_orders.models import Order, OrderDraft, OrderUpdate, StatusInfo, TransitionIn
from retail_orders.order_state import OrderStatus, allowed_next, badge_class, is_terminal
from retail_orders.queue import submit_order

router = APIRouter(prefix="/orders", tags=["orders"])


def get_manager(request: Request) -> OrderLifecycleManager:
    return request.app.state.manager


def _storage_unavailable(e: StorageError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(e))


@router.get("", response_model=list[Order])
async def list_orders(
    status: OrderStatus | None = None,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return await manager.list_orders(status)
    except StorageError as e:
        raise _storage_unavailable(e)


@router.post("", response_model=Order, status_code=201)
async def create_order(
    payload: OrderDraft,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return await manager.create_order(payload)
    except StorageError as e:
        raise _storage_unavailable(e)


@router.post("/submit", response_model=Order, status_code=202)
async def submit(payload: OrderDraft):
    """Accept an order for asynchronous creation by the intake worker."""
    order = await submit_order(payload)
    orders_submitted_total.inc()
    return order


@router.get("/statuses", response_model=list[StatusInfo])
async def list_statuses():
    """Every status with its allowed next actions, for rendering status controls."""
    return [
        StatusInfo(
            status=status,
            terminal=is_terminal(status),
            allowed_next=sorted(allowed_next(status), key=list(OrderStatus).index),
            badge=badge_class(status),
        )
        for status in OrderStatus
    ]


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return await manager.get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable(e)


@router.patch("/{order_id}", response_model=Order)
async def update_order(
    order_id: str,
    payload: OrderUpdate,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    try:
        return await manager.update_order(order_id, payload)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable(e)


@router.post("/{order_id}/status", response_model=Order)
async def change_status(
    order_id: str,
    payload: TransitionIn,
    manager: OrderLifecycleManager = Depends(get_manager),
):
    """
    Move the order to a new status. 409 when the transition is not allowed
    ("Cannot change status from Shipped to Pending") or the order changed underneath.
    """
    try:
        return await manager.apply_transition(order_id, payload.status)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidTransitionError, ConcurrentModificationError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable(e)


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: str,
    manager: OrderLifecycleManager = Depends(get_manager),
) -> Response:
    try:
        await manager.delete_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise _storage_unavailable(e)
    return Response(status_code=204)
