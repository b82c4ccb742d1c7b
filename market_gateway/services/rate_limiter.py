"""Sliding-window rate limiting for inbound API requests."""

import threading
import time


class RateLimiter:
    """
    In-memory rate limiter using a sliding window per client key.

    Keys are typically client IP addresses.
    """

    def __init__(self):
        # {key: [timestamp1, timestamp2, ...]}
        self._requests: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = 0.0

    def is_allowed(self, key: str, limit: int, window_seconds: int) -> tuple[bool, dict]:
        """
        Check and record a request.

        Args:
            key: Client identifier
            limit: Maximum requests per window; 0 or less disables the check
            window_seconds: Window length in seconds

        Returns:
            ``(is_allowed, rate_info)``; ``rate_info`` carries ``limit``,
            ``remaining``, ``reset_time`` and, when blocked, ``retry_after``
        """
        if limit <= 0:
            return True, {"limit": limit, "remaining": None, "window_seconds": window_seconds}

        current_time = time.time()
        window_start = current_time - window_seconds

        with self._lock:
            if current_time - self._last_sweep >= window_seconds:
                self._sweep(window_start)
                self._last_sweep = current_time

            recent = [t for t in self._requests.get(key, ()) if t > window_start]

            reset_time = int((recent[0] if recent else current_time) + window_seconds)
            rate_info = {
                "limit": limit,
                "remaining": max(0, limit - len(recent)),
                "reset_time": reset_time,
                "window_seconds": window_seconds,
            }

            if len(recent) >= limit:
                self._requests[key] = recent
                rate_info["retry_after"] = max(1, int(recent[0] + window_seconds - current_time))
                return False, rate_info

            recent.append(current_time)
            self._requests[key] = recent
            rate_info["remaining"] -= 1
            return True, rate_info

    def _sweep(self, window_start: float) -> None:
        # Drop clients with no request inside the window
        stale = [key for key, times in self._requests.items() if not times or times[-1] <= window_start]
        for key in stale:
            del self._requests[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def clear_key(self, key: str) -> None:
        with self._lock:
            self._requests.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()
