"""Structured logging module with JSON output support."""

import json
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from market_gateway.utils.config import config
from market_gateway.utils.trace_context import get_current_trace

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}


class StructuredLogger:
    """Logger that writes one JSON object per log entry."""

    def __init__(
        self,
        component: str,
        file_path: str | None = None,
        level: str | None = None,
    ):
        """
        Initialize the structured logger.

        Args:
            component: Name of the component using this logger
            file_path: Optional path to also append logs to (defaults to LOG_FILE)
            level: Minimum level to emit (defaults to LOG_LEVEL)
        """
        self.component = component
        self.file_path = file_path if file_path is not None else config.log.file_path
        self.min_level = LEVELS.get((level or config.log.level).upper(), LEVELS["INFO"])
        if self.file_path:
            Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)

    def _format_log_entry(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: dict[str, Any] | None = None,
    ) -> str:
        """Format a log entry as JSON, attaching the current trace ID."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": self.component,
            "message": message,
        }

        merged = dict(context or {})
        trace_id = get_current_trace()
        if trace_id and "trace_id" not in merged:
            merged["trace_id"] = trace_id
        if merged:
            entry["context"] = merged

        if exception:
            entry["exception"] = exception

        return json.dumps(entry, default=str)

    def _write_log(self, log_entry: str) -> None:
        try:
            print(log_entry, file=sys.stdout)
            if self.file_path:
                with open(self.file_path, "a") as f:
                    f.write(log_entry + "\n")
        except OSError as e:
            print(f"Failed to write log: {e}", file=sys.stderr)

    @staticmethod
    def _exception_details(exception: Exception) -> dict[str, Any]:
        return {
            "type": type(exception).__name__,
            "message": str(exception),
            "stack_trace": "".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            ),
        }

    def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: Exception | None = None,
    ) -> None:
        """
        Log a message with the given level.

        Unknown levels are logged as INFO.
        """
        level = level.upper()
        if level not in LEVELS:
            level = "INFO"
        if LEVELS[level] < self.min_level:
            return

        exc_dict = self._exception_details(exception) if exception else None
        self._write_log(self._format_log_entry(level, message, context, exc_dict))

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("DEBUG", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("INFO", message, context)

    def warning(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("WARNING", message, context)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: Exception | None = None,
    ) -> None:
        """Log an error message with optional exception details."""
        self.log("ERROR", message, context, exception)

    def critical(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: Exception | None = None,
    ) -> None:
        self.log("CRITICAL", message, context, exception)
