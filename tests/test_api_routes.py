"""Integration tests for the HTTP API."""

from market_gateway.services.errors import UpstreamTimeout, UpstreamUnavailable
from market_gateway.utils.config import config
from market_gateway.utils.event_store import ERROR, FETCH_COMPLETE, event_store

PRICES = {
    "bitcoin": {"usd": 65000, "usd_24h_change": 1.5, "usd_market_cap": 1.2e12},
    "ethereum": {"usd": 3000, "usd_24h_change": -2.5},
}


class TestStatusEndpoint:
    """Tests for /api/status and /health."""

    def test_status(self, test_client, fake_upstream):
        response = test_client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "Test Gateway"
        assert "time" in data
        assert fake_upstream.calls == []

    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestOverviewEndpoint:
    """Tests for /api/overview, /api/prices and /api/price/{symbol}."""

    def test_single_symbol(self, test_client, fake_upstream):
        fake_upstream.simple_price_payload = {"ethereum": {"usd": 3000, "usd_24h_change": -2.5}}

        response = test_client.get("/api/overview", params={"symbol": "eth"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["symbol"] == "ETH"
        assert body["data"]["price"] == 3000
        assert body["data"]["change24h"] == -2.5
        assert body["data"]["marketCap"] is None
        assert body["data"]["volume24h"] is None

    def test_batch_with_failures(self, test_client, fake_upstream):
        fake_upstream.simple_price_payload = PRICES

        response = test_client.get("/api/prices", params={"symbols": "btc, doesnotexist ,eth"})

        assert response.status_code == 200
        body = response.json()
        assert [s["id"] for s in body["data"]] == ["bitcoin", "ethereum"]
        assert body["failed"] == [
            {
                "alias": "doesnotexist",
                "error": "UNKNOWN_ASSET",
                "message": "Unknown asset: 'doesnotexist'",
            }
        ]

    def test_batch_without_failures_has_no_failed_key(self, test_client, fake_upstream):
        fake_upstream.simple_price_payload = PRICES

        body = test_client.get("/api/overview", params={"symbols": "btc,eth"}).json()

        assert "failed" not in body

    def test_unknown_symbol(self, test_client, fake_upstream):
        response = test_client.get("/api/overview", params={"symbol": "doesnotexist"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "UNKNOWN_ASSET"
        assert body["details"] == {"alias": "doesnotexist"}
        assert fake_upstream.calls == []

    def test_asset_not_found(self, test_client, fake_upstream):
        fake_upstream.simple_price_payload = {}

        response = test_client.get("/api/price/sol")

        assert response.status_code == 404
        assert response.json()["error"] == "ASSET_NOT_FOUND"

    def test_missing_symbol(self, test_client):
        response = test_client.get("/api/overview")

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PARAMETER"

    def test_upstream_timeout(self, test_client, fake_upstream):
        fake_upstream.error = UpstreamTimeout("Market-data provider did not respond within 8s")

        response = test_client.get("/api/overview", params={"symbol": "btc"})

        assert response.status_code == 503
        assert response.json()["error"] == "UPSTREAM_TIMEOUT"

    def test_upstream_unavailable(self, test_client, fake_upstream):
        fake_upstream.error = UpstreamUnavailable("Market-data provider is unreachable")

        response = test_client.get("/api/price/btc")

        assert response.status_code == 502
        assert response.json() == {
            "success": False,
            "error": "UPSTREAM_UNAVAILABLE",
            "message": "Market-data provider is unreachable",
        }

    def test_invalid_boolean_parameter(self, test_client):
        response = test_client.get("/api/overview", params={"symbol": "btc", "detailed": "maybe"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_PARAMETER"
        assert "detailed" in body["details"]

    def test_detailed_overview(self, test_client, fake_upstream):
        fake_upstream.markets_payload = [
            {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": 65000,
             "market_cap_rank": 1, "high_24h": 66000, "low_24h": 64000},
        ]

        response = test_client.get("/api/price/BTC", params={"detailed": "true"})

        assert response.status_code == 200
        assert response.json()["data"]["rank"] == 1
        assert response.json()["data"]["high24h"] == 66000
        assert fake_upstream.calls == [("markets", ["bitcoin"])]


class TestHistoryEndpoint:
    """Tests for /api/history and /api/history/{symbol}."""

    def test_history(self, test_client, fake_upstream):
        fake_upstream.chart_payloads["bitcoin"] = {
            "prices": [[3000, 3.0], [1000, 1.0], [123456], [2000, 2.0]]
        }

        response = test_client.get("/api/history", params={"symbol": "btc", "days": "30"})

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == [
            {"timestamp": 1000, "price": 1.0},
            {"timestamp": 2000, "price": 2.0},
            {"timestamp": 3000, "price": 3.0},
        ]
        assert body["meta"] == {"id": "bitcoin", "symbol": "BTC", "days": 30, "count": 3, "dropped": 1}

    def test_unsupported_days(self, test_client, fake_upstream):
        response = test_client.get("/api/history", params={"symbol": "btc", "days": "5"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_PARAMETER"
        assert body["details"]["allowed"] == [1, 7, 14, 30, 90, 180, 365]
        assert fake_upstream.calls == []

    def test_non_ascii_digit_days(self, test_client, fake_upstream):
        """Unicode digits such as superscript two are rejected as input, not a server error."""
        response = test_client.get("/api/history", params={"symbol": "btc", "days": "²"})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PARAMETER"
        assert fake_upstream.calls == []

    def test_range_label(self, test_client, fake_upstream):
        fake_upstream.chart_payloads["ethereum"] = {"prices": []}

        response = test_client.get("/api/history", params={"symbol": "eth", "range": "1y"})

        assert response.status_code == 200
        assert response.json()["meta"]["days"] == 365
        assert response.json()["data"] == []

    def test_days_wins_over_range(self, test_client, fake_upstream):
        fake_upstream.chart_payloads["ethereum"] = {"prices": []}

        response = test_client.get(
            "/api/history", params={"symbol": "eth", "days": "14", "range": "1y"}
        )

        assert response.json()["meta"]["days"] == 14

    def test_unknown_range_label(self, test_client):
        response = test_client.get("/api/history", params={"symbol": "eth", "range": "forever"})
        assert response.status_code == 400

    def test_path_variant_defaults_to_seven_days(self, test_client, fake_upstream):
        fake_upstream.chart_payloads["solana"] = {"prices": [[1000, 150.0]]}

        response = test_client.get("/api/history/sol")

        assert response.status_code == 200
        assert response.json()["meta"]["days"] == 7
        assert fake_upstream.calls == [("market_chart", "solana", 7)]

    def test_missing_symbol(self, test_client):
        response = test_client.get("/api/history", params={"days": "7"})
        assert response.status_code == 400

    def test_provider_unknown_asset(self, test_client):
        response = test_client.get("/api/history/doge")

        assert response.status_code == 404
        assert response.json()["details"] == {"id": "dogecoin", "alias": "doge"}


class TestAssetsEndpoint:
    """Tests for /api/assets."""

    def test_lists_supported_assets(self, test_client, resolver):
        response = test_client.get("/api/assets")

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == len(resolver)
        bitcoin = next(entry for entry in data if entry["id"] == "bitcoin")
        assert bitcoin["symbol"] == "BTC"
        assert "xbt" in bitcoin["aliases"]


class TestCrossCutting:
    """Tests for trace ids, rate limiting and unhandled errors."""

    def test_trace_id_is_echoed(self, test_client):
        response = test_client.get("/api/status", headers={"X-Trace-ID": "trace-abc-123"})
        assert response.headers["X-Trace-ID"] == "trace-abc-123"

    def test_trace_id_is_generated(self, test_client):
        response = test_client.get("/api/status")
        assert len(response.headers["X-Trace-ID"]) == 36

    def test_rate_limit(self, test_client, fake_upstream, monkeypatch):
        monkeypatch.setattr(config.rate_limit, "requests", 2)
        fake_upstream.chart_payloads["bitcoin"] = {"prices": []}

        first = test_client.get("/api/history/btc")
        second = test_client.get("/api/history/btc")
        third = test_client.get("/api/history/btc")

        assert first.status_code == 200
        assert second.status_code == 200
        assert third.status_code == 429
        assert third.json()["error"] == "RATE_LIMIT_EXCEEDED"
        assert "Retry-After" in third.headers
        assert third.headers["X-RateLimit-Limit"] == "2"
        assert len(fake_upstream.calls) == 2

    def test_status_is_not_rate_limited(self, test_client, monkeypatch):
        monkeypatch.setattr(config.rate_limit, "requests", 1)

        for _ in range(3):
            assert test_client.get("/api/status").status_code == 200

    def test_unhandled_exception_is_generic(self, test_client, fake_upstream):
        fake_upstream.error = RuntimeError("secret internal detail")

        response = test_client.get("/api/overview", params={"symbol": "btc"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "INTERNAL_ERROR"
        assert "secret" not in body["message"]


class TestDebugEndpoints:
    """Tests for /api/debug/metrics and /api/debug/events."""

    def setup_method(self):
        event_store.clear()

    def teardown_method(self):
        event_store.clear()

    def test_metrics(self, test_client):
        event_store.add_event(
            trace_id="t1",
            event_type=FETCH_COMPLETE,
            component="UpstreamClient",
            message="simple_price success",
            context={"endpoint": "simple_price", "status": "success"},
            duration_ms=12.0,
        )

        response = test_client.get("/api/debug/metrics")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_fetch_attempts"] == 1
        assert data["successful_fetches"] == 1
        assert data["fetches_by_endpoint"] == {"simple_price": 1}

    def test_events_by_trace(self, test_client):
        event_store.add_event("t1", ERROR, "ErrorHandlers", "first")
        event_store.add_event("t2", ERROR, "ErrorHandlers", "second")

        response = test_client.get("/api/debug/events", params={"trace_id": "t2"})

        data = response.json()["data"]
        assert [e["message"] for e in data] == ["second"]

    def test_events_limit_is_validated(self, test_client):
        response = test_client.get("/api/debug/events", params={"limit": 0})
        assert response.status_code == 400

    def test_server_errors_are_recorded(self, test_client, fake_upstream):
        fake_upstream.error = UpstreamUnavailable("down")

        response = test_client.get("/api/price/btc", headers={"X-Trace-ID": "trace-502"})

        assert response.status_code == 502
        events = event_store.get_events_by_trace("trace-502")
        assert [e.event_type for e in events] == [ERROR]
