"""Order-related data models."""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Order status progression."""

    TAKEN = "taken"
    READY = "ready"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    """How the order is fulfilled."""

    DINE_IN = "dine_in"
    DELIVERY = "delivery"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"


class InvoiceKind(str, Enum):
    """Proof of purchase issued at checkout."""

    NONE = "none"
    RECEIPT = "receipt"
    INVOICE = "invoice"


class OrderItem(BaseModel):
    """Individual line item in an order."""

    product_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    notes: str | None = None
    subtotal: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def calculate_subtotal(self) -> "OrderItem":
        """Line subtotal is always unit price times quantity."""
        self.subtotal = self.unit_price * self.quantity
        return self


class CustomerInfo(BaseModel):
    """Customer snapshot captured when the order is taken."""

    name: str
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


class Order(BaseModel):
    """Complete order record."""

    id: UUID = Field(default_factory=uuid4)
    status: OrderStatus = OrderStatus.TAKEN
    order_type: OrderType

    # Items
    items: list[OrderItem] = Field(default_factory=list)

    # Pricing
    subtotal: int = Field(default=0, ge=0)
    delivery_fee: int | None = Field(default=None, ge=0)
    delivery_distance_km: float | None = None
    estimated_minutes: int | None = None
    tip: int | None = Field(default=None, ge=0)

    # Customer
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_address: str | None = None
    customer_notes: str | None = None

    # Settlement
    payment_method: PaymentMethod | None = None
    payment_id: UUID | None = None
    invoice_kind: InvoiceKind = InvoiceKind.NONE
    cancel_reason: str | None = None

    # Timing
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None

    @model_validator(mode="after")
    def check_delivery_fee(self) -> "Order":
        """Dine-in orders never carry a delivery fee."""
        if self.order_type == OrderType.DINE_IN and self.delivery_fee is not None:
            raise ValueError("dine-in orders cannot carry a delivery fee")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def is_settled(self) -> bool:
        return self.payment_method is not None

    def calculate_subtotal(self) -> int:
        """Sum line item subtotals."""
        self.subtotal = sum(item.subtotal for item in self.items)
        return self.subtotal

    def amount_due(self, tip: int | None = None) -> int:
        """Subtotal plus delivery fee plus tip."""
        return self.subtotal + (self.delivery_fee or 0) + (tip or 0)


class OrderStatusSnapshot(BaseModel):
    """Lightweight view returned to status pollers."""

    order_id: UUID
    status: OrderStatus
    order_type: OrderType
    updated_at: datetime
    can_cancel: bool
    tracking_finished: bool
