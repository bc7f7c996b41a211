"""Order and checkout services."""

from comanda.services.checkout import CheckoutService
from comanda.services.events import EventPublisher
from comanda.services.orders import OrderService
from comanda.services.results import ServiceResult, service_boundary

__all__ = [
    "CheckoutService",
    "EventPublisher",
    "OrderService",
    "ServiceResult",
    "service_boundary",
]
