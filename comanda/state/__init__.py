"""State management modules."""

from comanda.state.manager import MemoryStateManager, StateManager
from comanda.state.orders import OrderRepository
from comanda.state.restaurant import CustomerCache, QuoteCache, RestaurantConfigStore
from comanda.state.workflow import OrderStateMachine, OrderTransitions

__all__ = [
    "StateManager",
    "MemoryStateManager",
    "OrderRepository",
    "RestaurantConfigStore",
    "QuoteCache",
    "CustomerCache",
    "OrderStateMachine",
    "OrderTransitions",
]
