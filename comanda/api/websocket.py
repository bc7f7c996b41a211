"""WebSocket push variant of order status tracking."""

import asyncio
import json
from typing import Any
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from comanda.client.status_sync import ServiceStatusFetcher, StatusSyncClient
from comanda.models.order import OrderStatusSnapshot
from comanda.services.orders import OrderService
from comanda.state.manager import StateBackend
from comanda.utils.logging import get_logger

logger = get_logger(__name__)


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "ping"
    content: str | None = None
    metadata: dict[str, Any] = {}


class ConnectionManager:
    """Tracks the sockets watching each order."""

    def __init__(self) -> None:
        self.active_connections: dict[str, set[WebSocket]] = {}

    async def connect(self, order_id: str, websocket: WebSocket) -> None:
        """Accept and register a WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(order_id, set()).add(websocket)
        logger.info("websocket_connected", order_id=order_id)

    def disconnect(self, order_id: str, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        sockets = self.active_connections.get(order_id)
        if sockets and websocket in sockets:
            sockets.discard(websocket)
            if not sockets:
                del self.active_connections[order_id]
            logger.info("websocket_disconnected", order_id=order_id)

    def watchers(self, order_id: str) -> int:
        return len(self.active_connections.get(order_id, ()))


# Global connection manager
manager = ConnectionManager()


async def _receive_loop(websocket: WebSocket, order_id: str) -> None:
    """Answer pings until the client goes away."""
    while True:
        try:
            data = await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("websocket_client_disconnected", order_id=order_id)
            return

        try:
            ws_message = WebSocketMessage(**json.loads(data))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            await websocket.send_json(
                {
                    "type": "error",
                    "message": "Invalid message format",
                    "details": str(e),
                }
            )
            continue

        if ws_message.type == "ping":
            await websocket.send_json({"type": "pong"})


async def handle_order_tracking(
    websocket: WebSocket,
    order_id: UUID,
    state_manager: StateBackend,
    interval: float | None = None,
) -> None:
    """
    Push status snapshots for one order until tracking finishes.

    Runs the same polling loop customer screens use, reading the store
    directly instead of going through HTTP.
    """
    order_str = str(order_id)
    await manager.connect(order_str, websocket)
    await websocket.send_json({"type": "connected", "order_id": order_str})

    async def push(snapshot: OrderStatusSnapshot) -> None:
        await websocket.send_json({"type": "status", **snapshot.model_dump(mode="json")})

    sync = StatusSyncClient(
        order_id,
        ServiceStatusFetcher(OrderService(state_manager)),
        interval=interval,
        on_change=push,
    )
    receiver = asyncio.create_task(_receive_loop(websocket, order_str))

    try:
        polling = sync.start()
        await asyncio.wait({polling, receiver}, return_when=asyncio.FIRST_COMPLETED)

        if polling.done() and not polling.cancelled() and polling.exception():
            logger.error(
                "order_tracking_failed",
                order_id=order_str,
                error=str(polling.exception()),
            )
        elif sync.finished:
            if sync.error is not None:
                await websocket.send_json({"type": "error", "message": str(sync.error)})
            else:
                await websocket.send_json({"type": "tracking_finished"})
            await websocket.close()

    except WebSocketDisconnect:
        logger.info("websocket_client_disconnected", order_id=order_str)

    finally:
        receiver.cancel()
        await sync.stop()
        manager.disconnect(order_str, websocket)
