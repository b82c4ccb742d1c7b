"""Gateway orchestration: resolve, fetch, normalize."""

from collections.abc import Callable, Hashable, Sequence
from datetime import UTC, datetime
from typing import Any

from market_gateway.models.market_data import (
    AliasFailure,
    AssetEntry,
    AssetHistory,
    MarketSnapshot,
    OverviewResult,
)
from market_gateway.services.errors import (
    AssetNotFound,
    GatewayError,
    InvalidParameter,
    UnknownAsset,
)
from market_gateway.services.response_cache import ResponseCache
from market_gateway.services.response_normalizer import (
    normalize_market_chart,
    normalize_markets,
    normalize_simple_price,
)
from market_gateway.services.symbol_resolver import SymbolResolver, normalize_alias, unique_ids
from market_gateway.services.upstream_client import UpstreamClient
from market_gateway.utils.config import GatewayConfig
from market_gateway.utils.event_store import CHART_POINTS_DROPPED, EventStore
from market_gateway.utils.logger import StructuredLogger
from market_gateway.utils.trace_context import get_current_trace

# Range labels accepted in place of a day count
RANGE_TO_DAYS = {
    "24h": 1,
    "1d": 1,
    "7d": 7,
    "14d": 14,
    "30d": 30,
    "90d": 90,
    "180d": 180,
    "1y": 365,
    "365d": 365,
}


def parse_range(label: str) -> int:
    """
    Translate a range label such as ``"7d"`` or ``"1y"`` to a day count.

    Raises:
        InvalidParameter: If the label is not recognised
    """
    days = RANGE_TO_DAYS.get(label.strip().lower())
    if days is None:
        raise InvalidParameter(
            f"Unsupported range {label!r}; use one of {', '.join(RANGE_TO_DAYS)}",
            details={"range": label, "allowed": list(RANGE_TO_DAYS)},
        )
    return days


class GatewayService:
    """Serves status, overview and history queries over one upstream client."""

    def __init__(
        self,
        resolver: SymbolResolver,
        upstream: UpstreamClient,
        gateway_config: GatewayConfig,
        cache: ResponseCache | None = None,
        event_store: EventStore | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            resolver: Immutable alias table
            upstream: Provider client
            gateway_config: Service name, default day range and batch limit
            cache: Optional raw payload cache
            event_store: Optional diagnostics store
        """
        self.resolver = resolver
        self.upstream = upstream
        self.service_name = gateway_config.service_name
        self.default_days = gateway_config.default_days
        self.max_batch_size = gateway_config.max_batch_size
        self.cache = cache
        self.event_store = event_store
        self.logger = StructuredLogger("GatewayService")

    def status(self) -> dict[str, Any]:
        """Liveness answer; never touches the provider."""
        return {
            "status": "ok",
            "service": self.service_name,
            "time": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }

    def supported_assets(self) -> list[AssetEntry]:
        return self.resolver.entries()

    def overview(self, aliases: Sequence[str], detailed: bool = False) -> OverviewResult:
        """
        Snapshots for a batch of aliases.

        Unknown aliases and assets the provider has no data for are reported
        per alias; the rest are returned in input order, once per asset.

        Args:
            aliases: Client-supplied aliases
            detailed: Use the markets endpoint (image, rank, high/low)

        Returns:
            OverviewResult with snapshots and per-alias failures

        Raises:
            InvalidParameter: If the batch is empty or too large
            UnknownAsset, AssetNotFound: If no alias produced a snapshot
            UpstreamTimeout, UpstreamUnavailable: If the provider call failed
        """
        if not aliases:
            raise InvalidParameter("At least one symbol is required")
        if len(aliases) > self.max_batch_size:
            raise InvalidParameter(
                f"Too many symbols: {len(aliases)} (maximum {self.max_batch_size})",
                details={"count": len(aliases), "max": self.max_batch_size},
            )

        plan: list[tuple[str, str | None, GatewayError | None]] = []
        for alias in aliases:
            try:
                plan.append((alias, self.resolver.resolve(alias), None))
            except UnknownAsset as e:
                plan.append((alias, None, e))

        ids = unique_ids(asset_id for _, asset_id, _ in plan if asset_id)
        snapshots = self._fetch_snapshots(ids, detailed) if ids else {}

        result = OverviewResult()
        errors: list[GatewayError] = []
        reported_ids: set[str] = set()
        reported_aliases: set[str] = set()
        for alias, asset_id, error in plan:
            if error is None and asset_id in snapshots:
                if asset_id not in reported_ids:
                    reported_ids.add(asset_id)
                    result.snapshots.append(snapshots[asset_id])
                continue

            if error is None:
                error = AssetNotFound(asset_id, alias)
            key = normalize_alias(alias)
            if key in reported_aliases:
                continue
            reported_aliases.add(key)
            errors.append(error)
            result.failures.append(AliasFailure(alias, error.code, error.message))

        self.logger.info(
            "Overview served",
            context={
                "requested": len(aliases),
                "snapshots": len(result.snapshots),
                "failed": len(result.failures),
                "detailed": detailed,
            },
        )

        if not result.snapshots:
            first = errors[0]
            first.details = {"failed": [f.to_dict() for f in result.failures]}
            raise first
        return result

    def overview_one(self, alias: str, detailed: bool = False) -> MarketSnapshot:
        """
        Snapshot for a single alias.

        Raises:
            UnknownAsset: If the alias is not in the table
            AssetNotFound: If the provider returned no data for the asset
        """
        asset_id = self.resolver.resolve(alias)
        snapshot = self._fetch_snapshots([asset_id], detailed).get(asset_id)
        if snapshot is None:
            raise AssetNotFound(asset_id, alias)
        return snapshot

    def history(self, alias: str, days: Any = None) -> AssetHistory:
        """
        Price history for one alias over an allowed day range.

        An empty series is a valid answer.

        Raises:
            InvalidParameter: If ``days`` is not in the allow-list
            UnknownAsset: If the alias is not in the table
            AssetNotFound: If the provider does not know the asset
        """
        days = self.upstream.validate_days(self.default_days if days is None else days)
        asset_id = self.resolver.resolve(alias)

        try:
            raw = self._cached(
                ("market_chart", asset_id, days),
                lambda: self.upstream.fetch_market_chart(asset_id, days),
            )
        except AssetNotFound:
            raise AssetNotFound(asset_id, alias) from None

        series = normalize_market_chart(raw)
        if series.dropped:
            context = {"id": asset_id, "days": days, "dropped": series.dropped, "kept": len(series)}
            self.logger.warning("Dropped malformed chart entries", context=context)
            if self.event_store is not None:
                self.event_store.add_event(
                    trace_id=get_current_trace(),
                    event_type=CHART_POINTS_DROPPED,
                    component="GatewayService",
                    message=f"Dropped {series.dropped} chart entries for {asset_id}",
                    context=context,
                )

        return AssetHistory(asset=self.resolver.entry_for(asset_id), days=days, series=series)

    def _fetch_snapshots(self, ids: list[str], detailed: bool) -> dict[str, MarketSnapshot]:
        entries = {asset_id: self.resolver.entry_for(asset_id) for asset_id in ids}
        key_ids = tuple(sorted(ids))
        if detailed:
            raw = self._cached(("markets", key_ids), lambda: self.upstream.fetch_markets(ids))
            snapshots = normalize_markets(raw, entries)
            return {asset_id: snapshots[asset_id] for asset_id in ids if asset_id in snapshots}

        raw = self._cached(("simple_price", key_ids), lambda: self.upstream.fetch_simple_price(ids))
        return normalize_simple_price(raw, ids, entries)

    def _cached(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        if self.cache is None:
            return fetch()
        return self.cache.get_or_fetch(key, fetch)

    def close(self) -> None:
        self.upstream.close()
