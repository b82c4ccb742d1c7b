"""Per-request trace ids carried through context variables."""

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

TRACE_HEADER = "X-Trace-ID"

_trace_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "trace_id", default=None
)


def create_trace() -> str:
    """
    Generate a new trace ID and make it current.

    Returns:
        A UUID4 trace ID string
    """
    trace_id = str(uuid.uuid4())
    _trace_id_context.set(trace_id)
    return trace_id


def get_current_trace() -> str | None:
    """Return the trace ID of the current request, if any."""
    return _trace_id_context.get()


def set_trace(trace_id: str) -> None:
    _trace_id_context.set(trace_id)


def clear_trace() -> None:
    _trace_id_context.set(None)


@contextmanager
def trace_scope(trace_id: str | None = None) -> Iterator[str]:
    """
    Run a block under a trace ID, restoring the previous one afterwards.

    Args:
        trace_id: Trace ID to adopt (e.g. from an inbound header); a new one
            is generated when omitted or blank

    Yields:
        The active trace ID
    """
    active = trace_id.strip() if trace_id and trace_id.strip() else str(uuid.uuid4())
    token = _trace_id_context.set(active)
    try:
        yield active
    finally:
        _trace_id_context.reset(token)
