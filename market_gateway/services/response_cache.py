"""Thread-safe TTL cache for raw upstream payloads."""

import copy
import threading
import time
from collections.abc import Callable, Hashable
from typing import Any


class ResponseCache:
    """
    Keeps upstream payloads for ``ttl_seconds``.

    A TTL of 0 disables caching: every lookup misses and nothing is stored.
    Stored values are deep-copied on the way in and out so callers can never
    mutate a shared entry.
    """

    def __init__(self, ttl_seconds: int = 0, max_entries: int = 1024):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._values: dict[Hashable, Any] = {}
        self._stored_at: dict[Hashable, float] = {}
        self._lock = threading.RLock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: Hashable) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            stored_at = self._stored_at.get(key)
            if stored_at is None:
                return None
            if time.monotonic() - stored_at >= self.ttl_seconds:
                self._evict(key)
                return None
            return copy.deepcopy(self._values[key])

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            if key not in self._values and len(self._values) >= self.max_entries:
                oldest = min(self._stored_at, key=self._stored_at.get)
                self._evict(oldest)
            self._values[key] = copy.deepcopy(value)
            self._stored_at[key] = time.monotonic()

    def get_or_fetch(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        """Return the cached payload for ``key``, calling ``fetch`` on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        self.set(key, value)
        return value

    def _evict(self, key: Hashable) -> None:
        self._values.pop(key, None)
        self._stored_at.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._stored_at.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)
