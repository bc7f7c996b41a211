"""Data models for the order fulfillment engine."""

from comanda.models.customer import CustomerProfile
from comanda.models.delivery import DeliveryQuote, Location, RestaurantDeliveryConfig
from comanda.models.history import StatusChange
from comanda.models.order import (
    CustomerInfo,
    InvoiceKind,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusSnapshot,
    OrderType,
    PaymentMethod,
)
from comanda.models.payment import (
    BillingDetail,
    DocumentType,
    Payment,
    SettlementReceipt,
    TipRecord,
)

__all__ = [
    # Customer
    "CustomerProfile",
    # Delivery
    "DeliveryQuote",
    "Location",
    "RestaurantDeliveryConfig",
    # History
    "StatusChange",
    # Order
    "CustomerInfo",
    "InvoiceKind",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusSnapshot",
    "OrderType",
    "PaymentMethod",
    # Payment
    "BillingDetail",
    "DocumentType",
    "Payment",
    "SettlementReceipt",
    "TipRecord",
]
