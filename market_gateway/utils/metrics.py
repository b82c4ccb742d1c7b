"""Metrics calculator aggregating gateway diagnostics events."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from market_gateway.utils.event_store import (
    CHART_POINTS_DROPPED,
    ERROR,
    FETCH_COMPLETE,
    EventStore,
)


@dataclass
class Metrics:
    """Aggregated upstream and normalization metrics."""

    total_fetch_attempts: int
    successful_fetches: int
    failed_fetches: int
    timed_out_fetches: int
    success_rate: float
    average_fetch_duration_ms: float
    fetches_by_endpoint: dict[str, int]
    dropped_chart_points: int
    recent_errors_count: int
    uptime_seconds: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MetricsCalculator:
    """Calculates metrics from event store data."""

    def __init__(self, event_store: EventStore, start_time: datetime | None = None):
        """
        Initialize the metrics calculator.

        Args:
            event_store: The event store to calculate metrics from
            start_time: Optional start time for uptime calculation (defaults to now)
        """
        self.event_store = event_store
        self.start_time = start_time or datetime.now(timezone.utc)

    def calculate(self) -> Metrics:
        events = self.event_store.get_all_events()

        fetches = [e for e in events if e.event_type == FETCH_COMPLETE]
        successful = len([e for e in fetches if e.context.get("status") == "success"])
        timed_out = len([e for e in fetches if e.context.get("error") == "UPSTREAM_TIMEOUT"])
        failed = len(fetches) - successful

        success_rate = (successful / len(fetches) * 100) if fetches else 0.0

        durations = [e.duration_ms for e in fetches if e.duration_ms is not None]
        average_duration = sum(durations) / len(durations) if durations else 0.0

        by_endpoint: dict[str, int] = {}
        for e in fetches:
            endpoint = e.context.get("endpoint", "unknown")
            by_endpoint[endpoint] = by_endpoint.get(endpoint, 0) + 1

        dropped = sum(
            e.context.get("dropped", 0) for e in events if e.event_type == CHART_POINTS_DROPPED
        )
        errors = len([e for e in events if e.event_type == ERROR])

        uptime = int((datetime.now(timezone.utc) - self.start_time).total_seconds())

        return Metrics(
            total_fetch_attempts=len(fetches),
            successful_fetches=successful,
            failed_fetches=failed,
            timed_out_fetches=timed_out,
            success_rate=success_rate,
            average_fetch_duration_ms=average_duration,
            fetches_by_endpoint=by_endpoint,
            dropped_chart_points=dropped,
            recent_errors_count=errors,
            uptime_seconds=uptime,
        )
