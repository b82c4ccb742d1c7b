"""Pytest configuration and fixtures."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from main import app
from market_gateway.api.dependencies import get_gateway_service
from market_gateway.services.errors import AssetNotFound
from market_gateway.services.gateway_service import GatewayService
from market_gateway.services.rate_limiter import rate_limiter
from market_gateway.services.symbol_resolver import DEFAULT_ASSETS, SymbolResolver
from market_gateway.services.upstream_client import UpstreamClient
from market_gateway.utils.config import GatewayConfig, UpstreamConfig
from market_gateway.utils.event_store import EventStore

ALLOWED_DAYS = [1, 7, 14, 30, 90, 180, 365]


class FakeUpstreamClient(UpstreamClient):
    """Upstream double answering from canned payloads and recording every call."""

    def __init__(self):
        super().__init__(UpstreamConfig(), allowed_days=ALLOWED_DAYS, session=MagicMock())
        self.simple_price_payload = {}
        self.markets_payload = []
        self.chart_payloads = {}
        self.error = None
        self.calls = []

    def fetch_simple_price(self, ids):
        self.calls.append(("simple_price", sorted(ids)))
        if self.error:
            raise self.error
        return self.simple_price_payload

    def fetch_markets(self, ids):
        self.calls.append(("markets", sorted(ids)))
        if self.error:
            raise self.error
        return self.markets_payload

    def fetch_market_chart(self, asset_id, days):
        days = self.validate_days(days)
        self.calls.append(("market_chart", asset_id, days))
        if self.error:
            raise self.error
        if asset_id not in self.chart_payloads:
            raise AssetNotFound(asset_id)
        return self.chart_payloads[asset_id]


@pytest.fixture
def resolver():
    return SymbolResolver(DEFAULT_ASSETS)


@pytest.fixture
def fake_upstream():
    return FakeUpstreamClient()


@pytest.fixture
def event_store():
    return EventStore()


@pytest.fixture
def gateway_config():
    return GatewayConfig(service_name="Test Gateway", allowed_days=ALLOWED_DAYS, max_batch_size=5)


@pytest.fixture
def gateway(resolver, fake_upstream, gateway_config, event_store):
    return GatewayService(resolver, fake_upstream, gateway_config, event_store=event_store)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    rate_limiter.clear_all()
    yield
    rate_limiter.clear_all()


@pytest.fixture
def test_client(gateway):
    """Test client whose gateway talks to the fake upstream."""
    app.dependency_overrides[get_gateway_service] = lambda: gateway
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()
