"""In-memory diagnostics store for upstream calls and normalization events."""

import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

# Event types recorded by the gateway
FETCH_COMPLETE = "fetch_complete"
CHART_POINTS_DROPPED = "chart_points_dropped"
ERROR = "error"


@dataclass
class Event:
    """A single diagnostics event."""

    id: str
    timestamp: str
    trace_id: str | None
    event_type: str
    component: str
    message: str
    context: dict[str, Any]
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class EventStore:
    """Bounded, thread-safe event store that drops events past a maximum age."""

    def __init__(self, max_size: int = 10000, max_age_seconds: int = 3600):
        """
        Initialize the event store.

        Args:
            max_size: Maximum number of events kept (oldest evicted first)
            max_age_seconds: Events older than this are purged on write
        """
        self.max_size = max_size
        self.max_age_seconds = max_age_seconds
        self._events: deque[Event] = deque(maxlen=max_size)
        self._lock = threading.RLock()

    def add_event(
        self,
        trace_id: str | None,
        event_type: str,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> Event:
        """Record an event and return it."""
        now = datetime.now(UTC)
        event = Event(
            id=str(uuid.uuid4()),
            timestamp=now.isoformat().replace("+00:00", "Z"),
            trace_id=trace_id,
            event_type=event_type,
            component=component,
            message=message,
            context=context or {},
            duration_ms=duration_ms,
        )
        with self._lock:
            self._purge_before(now - timedelta(seconds=self.max_age_seconds))
            self._events.append(event)
        return event

    def _purge_before(self, cutoff: datetime) -> int:
        # Events are appended in time order, so expired ones sit at the left
        removed = 0
        while self._events and _parse_timestamp(self._events[0].timestamp) <= cutoff:
            self._events.popleft()
            removed += 1
        return removed

    def clear_old_events(self, max_age_seconds: int | None = None) -> int:
        """
        Remove events older than the given age.

        Returns:
            Number of events removed
        """
        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        with self._lock:
            return self._purge_before(datetime.now(UTC) - timedelta(seconds=max_age))

    def get_recent_events(self, limit: int = 100) -> list[Event]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def get_events_by_trace(self, trace_id: str) -> list[Event]:
        with self._lock:
            return [e for e in self._events if e.trace_id == trace_id]

    def get_events_by_type(self, event_type: str, limit: int = 100) -> list[Event]:
        with self._lock:
            matching = [e for e in self._events if e.event_type == event_type]
        return matching[-limit:] if limit > 0 else []

    def get_all_events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._events)


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# Process-wide diagnostics store
event_store = EventStore()
