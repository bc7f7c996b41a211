"""Tagged results returned by every order service operation."""

import functools
import inspect
import time
from typing import Any, Awaitable, Callable, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from comanda.errors import ErrorCategory, ErrorKind, OrderError
from comanda.utils.logging import OperationLogger

F = TypeVar("F", bound=Callable[..., Awaitable["ServiceResult"]])

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError)


class ServiceResult(BaseModel):
    """Outcome of a service operation: a value or one tagged failure."""

    operation: str
    success: bool
    value: Any = None
    error_kind: ErrorKind | None = None
    error_category: ErrorCategory | None = None
    error: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    log_reference: str | None = None
    warnings: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0

    @classmethod
    def ok(cls, operation: str, value: Any = None, warnings: list[str] | None = None) -> "ServiceResult":
        return cls(operation=operation, success=True, value=value, warnings=warnings or [])

    @classmethod
    def failure(
        cls,
        operation: str,
        kind: ErrorKind,
        category: ErrorCategory,
        error: str,
        details: dict[str, Any] | None = None,
        log_reference: str | None = None,
    ) -> "ServiceResult":
        return cls(
            operation=operation,
            success=False,
            error_kind=kind,
            error_category=category,
            error=error,
            details=details or {},
            log_reference=log_reference,
        )


def service_boundary(operation: str, order_arg: str | None = "order_id") -> Callable[[F], F]:
    """
    Wrap a service coroutine so nothing escapes it as an exception.

    The wrapped coroutine returns its value (or a ServiceResult) on success
    and raises OrderError subclasses for expected failures. Store outages
    become ``unavailable``; anything else becomes ``unexpected`` with a log
    reference, keeping internal detail out of the message.
    """
    op_logger = OperationLogger(f"comanda.{operation}")

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> ServiceResult:
            start_time = time.time()
            order_id = None
            if order_arg:
                order_id = signature.bind_partial(*args, **kwargs).arguments.get(order_arg)
            order_ref = str(order_id) if order_id is not None else None

            try:
                value = await func(*args, **kwargs)
                result = value if isinstance(value, ServiceResult) else ServiceResult.ok(operation, value)

            except OrderError as e:
                result = ServiceResult.failure(
                    operation,
                    e.kind,
                    e.category,
                    e.message,
                    details={k: v for k, v in e.details.items() if v is not None},
                )

            except TRANSIENT_ERRORS as e:
                log_reference = uuid4().hex[:12]
                op_logger.log_error(
                    error=str(e),
                    order_id=order_ref,
                    log_reference=log_reference,
                    transient=True,
                )
                result = ServiceResult.failure(
                    operation,
                    ErrorKind.UNAVAILABLE,
                    ErrorCategory.TRANSIENT,
                    "The order store is temporarily unavailable. Please try again.",
                    log_reference=log_reference,
                )

            except Exception as e:
                log_reference = uuid4().hex[:12]
                op_logger.logger.exception(
                    "operation_unexpected_error",
                    operation=operation,
                    order_id=order_ref,
                    log_reference=log_reference,
                    error=str(e),
                )
                result = ServiceResult.failure(
                    operation,
                    ErrorKind.UNEXPECTED,
                    ErrorCategory.UNEXPECTED,
                    "An unexpected error occurred.",
                    log_reference=log_reference,
                )

            result.execution_time_ms = (time.time() - start_time) * 1000
            op_logger.log_operation(
                operation=operation,
                order_id=order_ref,
                success=result.success,
                duration_ms=result.execution_time_ms,
                error_kind=result.error_kind.value if result.error_kind else None,
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
