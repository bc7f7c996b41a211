"""UI signals and status history, both written best-effort."""

from typing import Any

from comanda.config import get_settings
from comanda.models.history import StatusChange
from comanda.state.manager import StateBackend
from comanda.state.orders import OrderRepository
from comanda.utils.logging import get_logger

logger = get_logger(__name__)

ORDERS_RELOAD = "orders.reload"
SETTLEMENT_SUCCEEDED = "settlement.succeeded"


class EventPublisher:
    """Publishes lightweight signals that tell screens to refresh."""

    def __init__(self, state_manager: StateBackend, channel: str | None = None):
        self.state = state_manager
        self.channel = channel or get_settings().events_channel

    async def publish(self, event: str, **payload: Any) -> bool:
        """Publish ``event``. A failed publish is logged, never raised."""
        message = {"event": event, **payload}
        try:
            await self.state.publish(self.channel, message)
        except Exception as e:
            logger.warning("event_publish_failed", event_name=event, error=str(e))
            return False
        return True


async def record_status_change(repository: OrderRepository, change: StatusChange) -> str | None:
    """
    Append ``change`` to the order's history.

    Returns a warning message when the append fails; the status change it
    describes has already been committed and stays in place.
    """
    try:
        await repository.append_history(change)
    except Exception as e:
        logger.warning(
            "history_append_failed",
            order_id=str(change.order_id),
            to_status=change.to_status.value,
            error=str(e),
        )
        return "Status history could not be recorded"
    return None
