"""Polling client that follows an order until tracking is finished."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable
from uuid import UUID

import httpx
from pydantic import ValidationError

from comanda.config import get_settings
from comanda.errors import ErrorCategory
from comanda.models.order import OrderStatusSnapshot
from comanda.services.orders import OrderService
from comanda.state.workflow import TRACKING_FINAL_STATES
from comanda.utils.logging import get_logger

logger = get_logger(__name__)

StatusFetcher = Callable[[UUID], Awaitable[OrderStatusSnapshot]]
ChangeCallback = Callable[[OrderStatusSnapshot], Any]
ErrorCallback = Callable[[Exception], Any]


class StatusFetchError(Exception):
    """A status fetch failed. Transient failures are retried on the next tick."""

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


TRANSIENT_FETCH_ERRORS = (httpx.TransportError, ConnectionError, TimeoutError)


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class StatusSyncClient:
    """
    Re-fetches an order's status at a fixed interval.

    Fetch and sleep run in one task, so a slow fetch delays the next poll
    instead of overlapping it. The loop ends by itself once the order is
    delivered, cancelled or arrived, and on ``stop()``.
    """

    def __init__(
        self,
        order_id: UUID,
        fetch: StatusFetcher,
        interval: float | None = None,
        on_change: ChangeCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self.order_id = order_id
        self.fetch = fetch
        if interval is None:
            interval = get_settings().status_poll_interval_seconds
        self.interval = interval
        self.on_change = on_change
        self.on_error = on_error

        self.snapshot: OrderStatusSnapshot | None = None
        self.finished = False
        self.error: StatusFetchError | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> OrderStatusSnapshot | None:
        """Fetch once; keep the last snapshot if the fetch fails transiently."""
        try:
            snapshot = await self.fetch(self.order_id)

        except StatusFetchError as e:
            await self._report(e)
            if not e.transient:
                self.error = e
                self.finished = True
            return self.snapshot

        except TRANSIENT_FETCH_ERRORS as e:
            await self._report(e)
            return self.snapshot

        changed = self.snapshot is None or (
            snapshot.status != self.snapshot.status
            or snapshot.can_cancel != self.snapshot.can_cancel
        )
        self.snapshot = snapshot

        if changed:
            logger.debug(
                "order_status_changed",
                order_id=str(self.order_id),
                status=snapshot.status.value,
            )
            if self.on_change is not None:
                await _maybe_await(self.on_change(snapshot))

        if snapshot.tracking_finished or snapshot.status in TRACKING_FINAL_STATES:
            self.finished = True

        return snapshot

    async def _report(self, error: Exception) -> None:
        logger.warning(
            "order_status_fetch_failed",
            order_id=str(self.order_id),
            error=str(error),
        )
        if self.on_error is not None:
            await _maybe_await(self.on_error(error))

    async def run(self) -> None:
        """Poll until tracking is finished."""
        while not self.finished:
            await self.poll_once()
            if self.finished:
                break
            await asyncio.sleep(self.interval)

        logger.info(
            "order_tracking_finished",
            order_id=str(self.order_id),
            status=self.snapshot.status.value if self.snapshot else None,
        )

    def start(self) -> asyncio.Task[None]:
        """Start polling in the background."""
        if not self.running:
            self._task = asyncio.create_task(self.run())
        return self._task

    def _log_task_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(
            "order_tracking_crashed",
            order_id=str(self.order_id),
            error=str(error),
            error_type=type(error).__name__,
        )

    async def stop(self) -> None:
        """Stop polling and release the task."""
        task, self._task = self._task, None
        if task is None:
            return
        if task.done():
            self._log_task_failure(task)
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        """Wait for polling to end, re-raising whatever stopped it."""
        if self._task is None:
            return
        try:
            await self._task
        finally:
            if self._task is not None and self._task.done():
                self._log_task_failure(self._task)

    async def __aenter__(self) -> "StatusSyncClient":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


class HttpStatusFetcher:
    """Fetches status snapshots from the order API over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.request_timeout
        )

    async def __call__(self, order_id: UUID) -> OrderStatusSnapshot:
        response = await self.client.get(f"{self.base_url}/orders/{order_id}/status")

        if response.status_code == 404:
            raise StatusFetchError("Order not found", transient=False)
        if response.status_code >= 500:
            raise StatusFetchError(
                f"Status endpoint returned {response.status_code}", transient=True
            )
        if response.is_error:
            raise StatusFetchError(
                f"Status endpoint returned {response.status_code}", transient=False
            )

        try:
            return OrderStatusSnapshot.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise StatusFetchError(
                f"Status endpoint returned an unreadable body: {e}", transient=True
            ) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class ServiceStatusFetcher:
    """Fetches status snapshots straight from an OrderService."""

    def __init__(self, order_service: OrderService):
        self.order_service = order_service

    async def __call__(self, order_id: UUID) -> OrderStatusSnapshot:
        result = await self.order_service.poll_order_status(order_id=order_id)
        if not result.success:
            raise StatusFetchError(
                result.error or "Status unavailable",
                transient=result.error_category == ErrorCategory.TRANSIENT,
            )
        return result.value
