"""HTTP client for the CoinGecko market-data API."""

import json
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from market_gateway.services.errors import (
    AssetNotFound,
    GatewayError,
    InvalidParameter,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from market_gateway.utils.config import UpstreamConfig
from market_gateway.utils.event_store import FETCH_COMPLETE, EventStore
from market_gateway.utils.logger import StructuredLogger
from market_gateway.utils.trace_context import get_current_trace

USER_AGENT = "market-gateway/1.0"
VS_CURRENCY = "usd"
CHUNK_SIZE = 16384


class UpstreamClient:
    """
    Issues the three provider calls the gateway needs.

    Every call has one wall-clock deadline of ``timeout_seconds``, covering
    the wait for a free connection, the request and the whole body. The
    request runs on a worker thread so the caller stops waiting at the
    deadline even while a slow provider is still sending. Concurrent calls
    are capped at ``max_connections``, which is also the size of the
    connection pool and of the worker pool.
    4xx answers are never retried; 5xx answers, connection errors and
    timeouts are retried up to ``max_retries`` times with linear backoff.
    """

    def __init__(
        self,
        upstream_config: UpstreamConfig,
        allowed_days: Iterable[int],
        event_store: EventStore | None = None,
        session: requests.Session | None = None,
    ):
        """
        Initialize the client.

        Args:
            upstream_config: Provider base URL, key, timeout and retry settings
            allowed_days: Day ranges accepted by :meth:`fetch_market_chart`
            event_store: Optional diagnostics store for per-call events
            session: Optional pre-built session (tests inject a mock)
        """
        self.base_url = upstream_config.base_url.rstrip("/")
        self.timeout = upstream_config.timeout_seconds
        self.max_retries = upstream_config.max_retries
        self.retry_backoff = upstream_config.retry_backoff_seconds
        self.allowed_days = tuple(sorted(set(allowed_days)))
        self.event_store = event_store
        self.session = session or self._build_session(upstream_config)
        self._slots = threading.BoundedSemaphore(upstream_config.max_connections)
        self._workers = ThreadPoolExecutor(
            max_workers=upstream_config.max_connections, thread_name_prefix="upstream"
        )
        self.logger = StructuredLogger("UpstreamClient")

    @staticmethod
    def _build_session(upstream_config: UpstreamConfig) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=1, pool_maxsize=upstream_config.max_connections)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update({"Accept": "application/json", "User-Agent": USER_AGENT})
        if upstream_config.api_key:
            session.headers[upstream_config.api_key_header] = upstream_config.api_key
        return session

    def close(self) -> None:
        self._workers.shutdown(wait=False, cancel_futures=True)
        self.session.close()

    def validate_days(self, days: Any) -> int:
        """
        Check a day range against the allow-list.

        Accepts ints and ASCII digit strings.

        Raises:
            InvalidParameter: If the value is not one of the allowed ranges
        """
        allowed = ", ".join(str(d) for d in self.allowed_days)
        if isinstance(days, bool):
            value = None
        elif isinstance(days, int):
            value = days
        elif isinstance(days, str) and days.strip().isascii() and days.strip().isdigit():
            value = int(days.strip())
        else:
            value = None

        if value not in self.allowed_days:
            raise InvalidParameter(
                f"Unsupported days value {days!r}; use one of {allowed}",
                details={"days": str(days), "allowed": list(self.allowed_days)},
            )
        return value

    @staticmethod
    def _id_list(ids: Iterable[str]) -> list[str]:
        id_list = sorted(set(ids))
        if not id_list:
            raise InvalidParameter("At least one asset id is required")
        return id_list

    def fetch_simple_price(self, ids: Iterable[str]) -> Any:
        """Batched ``/simple/price`` call with 24h change, market cap and volume."""
        id_list = self._id_list(ids)
        params = {
            "ids": ",".join(id_list),
            "vs_currencies": VS_CURRENCY,
            "include_24hr_change": "true",
            "include_market_cap": "true",
            "include_24hr_vol": "true",
            "include_last_updated_at": "true",
        }
        return self._get_json("/simple/price", params, endpoint="simple_price")

    def fetch_markets(self, ids: Iterable[str]) -> Any:
        """``/coins/markets`` call: name, image, rank and 24h high/low per asset."""
        id_list = self._id_list(ids)
        params = {
            "vs_currency": VS_CURRENCY,
            "ids": ",".join(id_list),
            "order": "market_cap_desc",
            "per_page": len(id_list),
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        return self._get_json("/coins/markets", params, endpoint="markets")

    def fetch_market_chart(self, asset_id: str, days: Any) -> Any:
        """``/coins/{id}/market_chart`` time series for an allowed day range."""
        days = self.validate_days(days)
        path = f"/coins/{quote(asset_id, safe='')}/market_chart"
        params = {"vs_currency": VS_CURRENCY, "days": days}
        return self._get_json(path, params, endpoint="market_chart", asset_id=asset_id)

    def _send(self, url: str, params: dict[str, Any], deadline: float) -> tuple[int, Any, bytes]:
        """
        Run one request against ``deadline`` (a ``time.monotonic()`` value).

        Returns:
            ``(status_code, headers, body)``

        Raises:
            requests.Timeout: If the deadline passes before the body is complete
            UpstreamUnavailable: If no connection slot frees up before the deadline
        """
        if not self._slots.acquire(timeout=max(deadline - time.monotonic(), 0)):
            raise UpstreamUnavailable("Too many concurrent requests to the market-data provider")
        try:
            future = self._workers.submit(self._fetch, url, params, deadline)
        except RuntimeError:
            self._slots.release()
            raise UpstreamUnavailable("Market-data client is closed") from None

        try:
            return future.result(timeout=max(deadline - time.monotonic(), 0))
        except TimeoutError:
            # The worker gives up at its next chunk or read timeout
            raise requests.Timeout("Deadline exceeded") from None

    def _fetch(self, url: str, params: dict[str, Any], deadline: float) -> tuple[int, Any, bytes]:
        try:
            response = self.session.get(
                url,
                params=params,
                timeout=max(deadline - time.monotonic(), 0.001),
                stream=True,
            )
            try:
                body = bytearray()
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if time.monotonic() >= deadline:
                        raise requests.Timeout("Deadline exceeded while reading the body")
                    body.extend(chunk)
                return response.status_code, response.headers, bytes(body)
            finally:
                response.close()
        finally:
            self._slots.release()

    def _get_json(
        self,
        path: str,
        params: dict[str, Any],
        endpoint: str,
        asset_id: str | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        attempts = self.max_retries + 1
        error: GatewayError | None = None
        # Retries share the call deadline
        deadline = time.monotonic() + self.timeout

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                remaining = max(deadline - time.monotonic(), 0)
                time.sleep(min(self.retry_backoff * (attempt - 1), remaining))
                if time.monotonic() >= deadline:
                    break

            started = time.monotonic()
            http_status = None
            try:
                http_status, headers, body = self._send(url, params, deadline)
                if http_status >= 500:
                    error = UpstreamUnavailable(
                        f"Market-data provider error (HTTP {http_status})"
                    )
                else:
                    payload = self._decode(http_status, headers, body, asset_id)
                    self._record(endpoint, attempt, started, http_status, None)
                    return payload
            except requests.Timeout:
                error = UpstreamTimeout(
                    f"Market-data provider did not respond within {self.timeout:g}s"
                )
            except requests.RequestException:
                error = UpstreamUnavailable("Market-data provider is unreachable")
            except GatewayError as e:
                # Client errors and malformed bodies are final
                self._record(endpoint, attempt, started, http_status, e)
                raise

            self._record(endpoint, attempt, started, http_status, error)
            if attempt < attempts:
                self.logger.warning(
                    "Retrying upstream request",
                    context={"endpoint": endpoint, "attempt": attempt, "error": error.code},
                )

        raise error

    @staticmethod
    def _decode(status: int, headers: Any, body: bytes, asset_id: str | None) -> Any:
        if status == 404 and asset_id:
            raise AssetNotFound(asset_id)
        if status == 429:
            raise UpstreamUnavailable(
                "Market-data provider rate limit reached",
                details={"retry_after": headers.get("Retry-After")},
            )
        if status in (401, 403):
            raise UpstreamUnavailable("Market-data provider rejected the gateway credentials")
        if status >= 400:
            raise UpstreamUnavailable(f"Market-data provider rejected the request (HTTP {status})")

        try:
            return json.loads(body)
        except ValueError as e:
            raise UpstreamUnavailable("Malformed response from market-data provider") from e

    def _record(
        self,
        endpoint: str,
        attempt: int,
        started: float,
        http_status: int | None,
        error: GatewayError | None,
    ) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        context = {
            "endpoint": endpoint,
            "attempt": attempt,
            "status": "failed" if error else "success",
            "http_status": http_status,
        }
        if error:
            context["error"] = error.code

        if error:
            self.logger.warning("Upstream request failed", context=context)
        else:
            self.logger.debug("Upstream request completed", context=context)

        if self.event_store is not None:
            self.event_store.add_event(
                trace_id=get_current_trace(),
                event_type=FETCH_COMPLETE,
                component="UpstreamClient",
                message=f"{endpoint} {context['status']}",
                context=context,
                duration_ms=round(duration_ms, 3),
            )
