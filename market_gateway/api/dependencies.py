"""FastAPI dependencies: the process-wide gateway, diagnostics and rate limits."""

import threading

from fastapi import Request

from market_gateway.api.error_handlers import RateLimitExceeded
from market_gateway.services.gateway_service import GatewayService
from market_gateway.services.rate_limiter import rate_limiter
from market_gateway.services.response_cache import ResponseCache
from market_gateway.services.symbol_resolver import build_resolver
from market_gateway.services.upstream_client import UpstreamClient
from market_gateway.utils.config import Config, config
from market_gateway.utils.event_store import EventStore, event_store
from market_gateway.utils.metrics import MetricsCalculator

_gateway: GatewayService | None = None
_gateway_lock = threading.Lock()
_metrics_calculator = MetricsCalculator(event_store)


def build_gateway_service(app_config: Config) -> GatewayService:
    """
    Wire resolver, upstream client and cache from configuration.

    Args:
        app_config: Application configuration

    Returns:
        A ready GatewayService
    """
    resolver = build_resolver(app_config.gateway.asset_table_path)
    upstream = UpstreamClient(
        app_config.upstream,
        allowed_days=app_config.gateway.allowed_days,
        event_store=event_store,
    )
    cache = ResponseCache(app_config.gateway.cache_ttl) if app_config.gateway.cache_ttl else None
    return GatewayService(
        resolver,
        upstream,
        app_config.gateway,
        cache=cache,
        event_store=event_store,
    )


def get_gateway_service() -> GatewayService:
    """FastAPI dependency returning the process-wide gateway, built on first use."""
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = build_gateway_service(config)
        return _gateway


def close_gateway_service() -> None:
    global _gateway
    with _gateway_lock:
        if _gateway is not None:
            _gateway.close()
            _gateway = None


def get_event_store() -> EventStore:
    return event_store


def get_metrics_calculator() -> MetricsCalculator:
    return _metrics_calculator


def check_rate_limit(request: Request) -> None:
    """
    FastAPI dependency enforcing the per-client request limit.

    Raises:
        RateLimitExceeded: 429 if the client is over its limit
    """
    client_ip = request.client.host if request.client else "unknown"
    is_allowed, rate_info = rate_limiter.is_allowed(
        key=f"ip:{client_ip}",
        limit=config.rate_limit.requests,
        window_seconds=config.rate_limit.window_seconds,
    )
    if not is_allowed:
        raise RateLimitExceeded(rate_info)
