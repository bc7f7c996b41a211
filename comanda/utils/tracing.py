"""Step tracing for multi-step order operations."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generator

from comanda.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TraceEvent:
    """Individual step recorded while an operation runs."""

    timestamp: datetime
    step: str
    operation: str
    order_id: str
    duration_ms: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class OperationTracer:
    """Traces the steps of one operation on one order."""

    def __init__(self, operation: str, order_id: str):
        self.operation = operation
        self.order_id = order_id
        self.events: list[TraceEvent] = []
        self.start_time = time.time()

    def add_event(
        self,
        step: str,
        duration_ms: float | None = None,
        **metadata: Any,
    ) -> None:
        """Add a trace event."""
        event = TraceEvent(
            timestamp=datetime.now(timezone.utc),
            step=step,
            operation=self.operation,
            order_id=self.order_id,
            duration_ms=duration_ms,
            metadata=metadata,
        )
        self.events.append(event)

        logger.debug(
            "trace_event",
            operation=self.operation,
            order_id=self.order_id,
            step=step,
            duration_ms=duration_ms,
            **metadata,
        )

    @contextmanager
    def trace_step(self, step: str, **metadata: Any) -> Generator[None, None, None]:
        """Context manager to trace a step with timing."""
        start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start) * 1000
            self.add_event(step, duration_ms=duration_ms, **metadata)

    @property
    def elapsed_ms(self) -> float:
        return (time.time() - self.start_time) * 1000

    def get_trace_summary(self) -> dict[str, Any]:
        """Get a summary of the trace."""
        return {
            "operation": self.operation,
            "order_id": self.order_id,
            "total_duration_ms": self.elapsed_ms,
            "total_steps": len(self.events),
            "steps": [
                {
                    "timestamp": event.timestamp.isoformat(),
                    "step": event.step,
                    "duration_ms": event.duration_ms,
                    "metadata": event.metadata,
                }
                for event in self.events
            ],
        }
