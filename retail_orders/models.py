import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from retail_orders.order_state import OrderStatus


def new_order_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderDraft(BaseModel):
    customer_id: str = Field(..., min_length=1, description="Customer placing the order")
    product_id: str = Field(..., min_length=1, description="Product being ordered")
    quantity: int = Field(..., gt=0, description="Quantity must be at least 1")
    total_amount: Decimal = Field(..., gt=0, decimal_places=2, description="Total amount must be greater than 0")


class OrderUpdate(BaseModel):
    """Editable order fields. Status only moves through transitions."""
    customer_id: str | None = Field(default=None, min_length=1)
    product_id: str | None = Field(default=None, min_length=1)
    quantity: int | None = Field(default=None, gt=0)
    total_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)

    model_config = ConfigDict(extra="forbid")


class Order(BaseModel):
    id: str
    customer_id: str
    product_id: str
    quantity: int = Field(..., gt=0)
    total_amount: Decimal = Field(..., ge=0)
    order_date: datetime
    status: OrderStatus = OrderStatus.PENDING
    version: int = 0  # bumped by the store on every write


class TransitionIn(BaseModel):
    status: OrderStatus = Field(..., description="Target order status")


class StatusInfo(BaseModel):
    status: OrderStatus
    terminal: bool
    allowed_next: list[OrderStatus]
    badge: str
