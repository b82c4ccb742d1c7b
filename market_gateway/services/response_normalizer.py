"""
Normalization of provider payloads into the gateway schema.

One function per raw shape:

- ``/simple/price``  -> :func:`normalize_simple_price`
- ``/coins/markets`` -> :func:`normalize_markets`
- ``/coins/{id}/market_chart`` -> :func:`normalize_market_chart`

All three are pure. Numeric fields that are absent, null or not numeric
become ``None``; an asset the provider returned nothing for gets no entry
at all. Field names are looked up through :data:`FIELD_SYNONYMS`, in order,
and the first key present with a non-null value wins.
"""

import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from market_gateway.models.market_data import (
    AssetEntry,
    HistoryPoint,
    HistorySeries,
    MarketSnapshot,
)
from market_gateway.services.errors import UpstreamUnavailable

FIELD_SYNONYMS: Mapping[str, tuple[str, ...]] = {
    "price": ("current_price", "price", "usd", "last"),
    "change_24h": ("price_change_percentage_24h", "usd_24h_change", "change24h"),
    "market_cap": ("market_cap", "usd_market_cap", "marketCap"),
    "volume_24h": ("total_volume", "usd_24h_vol", "volume24h", "volume"),
    "high_24h": ("high_24h", "high"),
    "low_24h": ("low_24h", "low"),
    "last_updated": ("last_updated_at", "last_updated"),
}

NUMERIC_FIELDS = ("price", "change_24h", "market_cap", "volume_24h", "high_24h", "low_24h")


def pick(row: Mapping[str, Any], field: str) -> Any:
    """Return the value of the first synonym of ``field`` present in ``row``."""
    for key in FIELD_SYNONYMS[field]:
        value = row.get(key)
        if value is not None:
            return value
    return None


def to_number(value: Any) -> float | None:
    """Coerce a provider value to a finite float, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_epoch_seconds(value: Any) -> int | None:
    """Epoch seconds from a numeric timestamp or an ISO-8601 string."""
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())
        except ValueError:
            pass
    number = to_number(value)
    return int(number) if number is not None else None


def _to_rank(value: Any) -> int | None:
    number = to_number(value)
    return int(number) if number is not None else None


def _entry(entries: Mapping[str, AssetEntry] | None, asset_id: str) -> AssetEntry:
    if entries and asset_id in entries:
        return entries[asset_id]
    return AssetEntry(asset_id, asset_id.upper(), asset_id)


def _snapshot(asset_id: str, symbol: str, name: str, row: Mapping[str, Any]) -> MarketSnapshot:
    numbers = {field: to_number(pick(row, field)) for field in NUMERIC_FIELDS}
    return MarketSnapshot(
        id=asset_id,
        symbol=symbol,
        name=name,
        last_updated=to_epoch_seconds(pick(row, "last_updated")),
        **numbers,
    )


def normalize_simple_price(
    raw: Any,
    requested_ids: Iterable[str],
    entries: Mapping[str, AssetEntry] | None = None,
) -> dict[str, MarketSnapshot]:
    """
    Normalize a ``/simple/price`` payload.

    Args:
        raw: Decoded JSON, ``{id: {"usd": ..., "usd_24h_change": ...}}``
        requested_ids: Ids that were asked for; other keys are ignored
        entries: Symbol table rows by id, for display symbol and name

    Returns:
        Snapshots by id. Ids missing from the payload, or mapped to an empty
        or non-object value, are left out.

    Raises:
        UpstreamUnavailable: If the payload is not a JSON object
    """
    if not isinstance(raw, dict):
        raise UpstreamUnavailable("Malformed simple-price payload from market-data provider")

    snapshots: dict[str, MarketSnapshot] = {}
    for asset_id in requested_ids:
        row = raw.get(asset_id)
        if not isinstance(row, dict) or not row:
            continue
        entry = _entry(entries, asset_id)
        snapshots[asset_id] = _snapshot(asset_id, entry.symbol, entry.name, row)
    return snapshots


def normalize_markets(
    raw: Any,
    entries: Mapping[str, AssetEntry] | None = None,
) -> dict[str, MarketSnapshot]:
    """
    Normalize a ``/coins/markets`` payload (a list of per-asset rows).

    Rows without a string ``id`` are skipped. Upstream ``symbol``/``name`` win
    over the symbol table when present.

    Raises:
        UpstreamUnavailable: If the payload is not a JSON array
    """
    if not isinstance(raw, list):
        raise UpstreamUnavailable("Malformed markets payload from market-data provider")

    snapshots: dict[str, MarketSnapshot] = {}
    for row in raw:
        if not isinstance(row, dict):
            continue
        asset_id = row.get("id")
        if not isinstance(asset_id, str) or not asset_id:
            continue

        entry = _entry(entries, asset_id)
        symbol = row.get("symbol")
        name = row.get("name")
        snapshot = _snapshot(
            asset_id,
            symbol.upper() if isinstance(symbol, str) and symbol else entry.symbol,
            name if isinstance(name, str) and name else entry.name,
            row,
        )
        image = row.get("image")
        snapshot.image = image if isinstance(image, str) and image else None
        snapshot.rank = _to_rank(row.get("market_cap_rank"))
        snapshots[asset_id] = snapshot
    return snapshots


def _chart_point(entry: Any) -> HistoryPoint | None:
    if not isinstance(entry, (list, tuple)) or len(entry) != 2:
        return None
    timestamp, price = entry
    if isinstance(timestamp, bool) or isinstance(price, bool):
        return None
    if not isinstance(timestamp, (int, float)) or not isinstance(price, (int, float)):
        return None
    if not math.isfinite(timestamp) or not math.isfinite(price):
        return None
    return HistoryPoint(timestamp=int(timestamp), price=float(price))


def normalize_market_chart(raw: Any) -> HistorySeries:
    """
    Normalize a ``/coins/{id}/market_chart`` payload into a history series.

    Only ``raw["prices"]`` is used. Entries that are not two-element numeric
    ``[timestamp_ms, price]`` pairs are dropped and counted. A missing or
    empty ``prices`` list gives an empty series.

    Raises:
        UpstreamUnavailable: If the payload is not an object, or ``prices``
            is not a list
    """
    if not isinstance(raw, dict):
        raise UpstreamUnavailable("Malformed market-chart payload from market-data provider")

    entries = raw.get("prices")
    if entries is None:
        return HistorySeries()
    if not isinstance(entries, list):
        raise UpstreamUnavailable("Malformed market-chart payload from market-data provider")

    points: list[HistoryPoint] = []
    dropped = 0
    for entry in entries:
        point = _chart_point(entry)
        if point is None:
            dropped += 1
        else:
            points.append(point)

    points.sort(key=lambda p: p.timestamp)
    return HistorySeries(points=points, dropped=dropped)
