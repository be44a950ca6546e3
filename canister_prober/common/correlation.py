"""
Correlation ID management for poll cycle tracing.
Each poll cycle gets its own ID so the log lines of one cycle can be grouped.
"""
import uuid
import logging
from typing import Optional
from contextvars import ContextVar

_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    'correlation_id', default=None
)

_component_var: ContextVar[Optional[str]] = ContextVar(
    'component', default=None
)


def generate_correlation_id() -> str:
    """Return a new UUID4 string."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


def set_component(component: str) -> None:
    """
    Set the component name for the current context.

    Args:
        component: Component name (e.g., "prober", "metrics-server")
    """
    _component_var.set(component)


def get_component() -> Optional[str]:
    return _component_var.get()


class CorrelationFilter(logging.Filter):
    """
    Logging filter that injects correlation_id and component into log records.
    Reads from ContextVar so every log statement inside a cycle carries the
    cycle's ID without passing it around.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or ""
        record.component = get_component() or ""
        return True


class CorrelationContext:
    """
    Context manager for setting a correlation ID within a scope.
    Restores the previous ID on exit.

    Usage:
        with CorrelationContext() as ctx:
            logger.info("cycle started")   # carries ctx.correlation_id
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._previous_id: Optional[str] = None

    def __enter__(self) -> 'CorrelationContext':
        self._previous_id = get_correlation_id()
        set_correlation_id(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._previous_id is not None:
            set_correlation_id(self._previous_id)
        else:
            clear_correlation_id()
