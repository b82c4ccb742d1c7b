"""API routes for status, market overview and price history."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from market_gateway.api.dependencies import (
    check_rate_limit,
    get_event_store,
    get_gateway_service,
    get_metrics_calculator,
)
from market_gateway.models.market_data import AssetHistory
from market_gateway.services.errors import InvalidParameter
from market_gateway.services.gateway_service import GatewayService, parse_range
from market_gateway.utils.event_store import EventStore
from market_gateway.utils.metrics import MetricsCalculator

router = APIRouter()
debug_router = APIRouter(prefix="/debug")


def _split_symbols(symbols: str) -> list[str]:
    return [part.strip() for part in symbols.split(",") if part.strip()]


def _require_symbol(symbol: str | None) -> str:
    if symbol is None or not symbol.strip():
        raise InvalidParameter("Query parameter 'symbol' is required")
    return symbol


def _history_body(history: AssetHistory) -> dict[str, Any]:
    return {
        "success": True,
        "data": [point.to_dict() for point in history.series.points],
        "meta": history.meta(),
    }


def _history(
    gateway: GatewayService,
    symbol: str | None,
    days: str | None,
    range_label: str | None,
) -> AssetHistory:
    symbol = _require_symbol(symbol)
    if days is None and range_label is not None:
        days = parse_range(range_label)
    return gateway.history(symbol, days)


@router.get("/status")
def get_status(gateway: GatewayService = Depends(get_gateway_service)):
    """Service liveness. Never calls the market-data provider."""
    return gateway.status()


@router.get("/overview", dependencies=[Depends(check_rate_limit)])
@router.get("/prices", dependencies=[Depends(check_rate_limit)])
def get_overview(
    symbol: str | None = Query(None, description="Single alias, e.g. 'btc'"),
    symbols: str | None = Query(None, description="Comma-separated aliases"),
    detailed: bool = Query(False, description="Include image, rank and 24h high/low"),
    gateway: GatewayService = Depends(get_gateway_service),
):
    """
    Current market snapshot(s).

    ``symbols`` returns a list plus a ``failed`` entry per alias that produced
    no snapshot; ``symbol`` returns one snapshot or an error.
    """
    if symbols is not None:
        result = gateway.overview(_split_symbols(symbols), detailed=detailed)
        body: dict[str, Any] = {
            "success": True,
            "data": [snapshot.to_dict() for snapshot in result.snapshots],
        }
        if result.failures:
            body["failed"] = [failure.to_dict() for failure in result.failures]
        return body

    snapshot = gateway.overview_one(_require_symbol(symbol), detailed=detailed)
    return {"success": True, "data": snapshot.to_dict()}


@router.get("/price/{symbol}", dependencies=[Depends(check_rate_limit)])
def get_price(
    symbol: str,
    detailed: bool = Query(False),
    gateway: GatewayService = Depends(get_gateway_service),
):
    snapshot = gateway.overview_one(symbol, detailed=detailed)
    return {"success": True, "data": snapshot.to_dict()}


@router.get("/history", dependencies=[Depends(check_rate_limit)])
def get_history(
    symbol: str | None = Query(None, description="Alias, e.g. 'eth'"),
    days: str | None = Query(None, description="Day range from the allow-list"),
    range_label: str | None = Query(None, alias="range", description="e.g. 24h, 7d, 1y"),
    gateway: GatewayService = Depends(get_gateway_service),
):
    """
    Price history as ``[{timestamp, price}]`` ascending by timestamp.

    ``days`` takes precedence over ``range``; the default range is
    HISTORY_DEFAULT_DAYS.
    """
    return _history_body(_history(gateway, symbol, days, range_label))


@router.get("/history/{symbol}", dependencies=[Depends(check_rate_limit)])
def get_history_for_symbol(
    symbol: str,
    days: str | None = Query(None),
    range_label: str | None = Query(None, alias="range"),
    gateway: GatewayService = Depends(get_gateway_service),
):
    return _history_body(_history(gateway, symbol, days, range_label))


@router.get("/assets")
def get_assets(gateway: GatewayService = Depends(get_gateway_service)):
    """Supported assets and the aliases each one answers to."""
    return {"success": True, "data": [entry.to_dict() for entry in gateway.supported_assets()]}


@debug_router.get("/metrics")
def get_metrics(calculator: MetricsCalculator = Depends(get_metrics_calculator)):
    return {"success": True, "data": calculator.calculate().to_dict()}


@debug_router.get("/events")
def get_events(
    trace_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    store: EventStore = Depends(get_event_store),
):
    """Recent diagnostics events, optionally for one trace."""
    events = store.get_events_by_trace(trace_id)[-limit:] if trace_id else store.get_recent_events(limit)
    return {"success": True, "data": [event.to_dict() for event in events]}
