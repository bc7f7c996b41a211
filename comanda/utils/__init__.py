"""Utility modules."""

from comanda.utils.logging import OperationLogger, get_logger, setup_logging
from comanda.utils.tracing import OperationTracer

__all__ = ["setup_logging", "get_logger", "OperationLogger", "OperationTracer"]
