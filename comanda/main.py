"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from comanda import __version__
from comanda.api.routes import get_state_backend, router
from comanda.api.websocket import handle_order_tracking
from comanda.config import get_settings
from comanda.services.results import TRANSIENT_ERRORS
from comanda.state.manager import StateBackend, close_state_manager, get_state_manager
from comanda.utils.logging import get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    logger.info("application_starting", version=__version__)

    # Initialize state manager
    await get_state_manager()
    logger.info("state_manager_initialized", backend=get_settings().state_backend)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await close_state_manager()


# Create FastAPI app
app = FastAPI(
    title="Comanda",
    description="Order fulfillment and checkout settlement engine for restaurants",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check(
    state_manager: StateBackend = Depends(get_state_backend),
) -> dict[str, str]:
    """Health check endpoint."""
    try:
        store_ok = await state_manager.ping()
    except TRANSIENT_ERRORS as e:
        logger.warning("health_check_store_unreachable", error=str(e))
        store_ok = False

    return {
        "status": "healthy" if store_ok else "degraded",
        "service": "comanda",
        "store": "ok" if store_ok else "unreachable",
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "Comanda order API",
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(router, prefix="/api/v1", tags=["orders"])


# WebSocket endpoint
@app.websocket("/ws/orders/{order_id}")
async def websocket_endpoint(
    websocket: WebSocket,
    order_id: str,
    state_manager: StateBackend = Depends(get_state_backend),
) -> None:
    """Push status updates for one order until tracking finishes."""
    try:
        order_uuid = UUID(order_id)
    except ValueError:
        await websocket.close(code=1003, reason="Invalid order ID")
        return

    await handle_order_tracking(websocket, order_uuid, state_manager)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "comanda.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
