"""Order status history records."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from comanda.models.order import OrderStatus, utcnow


class StatusChange(BaseModel):
    """One status change in an order's life."""

    order_id: UUID
    from_status: OrderStatus | None = None
    to_status: OrderStatus
    operator_id: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
