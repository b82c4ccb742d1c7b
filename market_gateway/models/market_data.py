"""Market data models: symbol table entries, snapshots and history series."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AssetEntry:
    """One row of the symbol table."""

    id: str
    symbol: str
    name: str
    aliases: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "aliases": list(self.aliases),
        }


@dataclass
class MarketSnapshot:
    """Normalized current market state for one asset. Missing numbers stay None."""

    id: str
    symbol: str
    name: str
    price: float | None = None
    change_24h: float | None = None
    market_cap: float | None = None
    volume_24h: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    image: str | None = None
    rank: int | None = None
    last_updated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the public camelCase field names."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change24h": self.change_24h,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "high24h": self.high_24h,
            "low24h": self.low_24h,
            "image": self.image,
            "rank": self.rank,
            "lastUpdated": self.last_updated,
        }


@dataclass(frozen=True)
class HistoryPoint:
    """A price observation; timestamp is epoch milliseconds."""

    timestamp: int
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "price": self.price}


@dataclass
class HistorySeries:
    """Points ascending by timestamp, plus how many raw entries were dropped."""

    points: list[HistoryPoint] = field(default_factory=list)
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points

    def to_dict(self) -> dict[str, Any]:
        return {
            "points": [p.to_dict() for p in self.points],
            "dropped": self.dropped,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistorySeries":
        return cls(
            points=[
                HistoryPoint(timestamp=int(p["timestamp"]), price=float(p["price"]))
                for p in data.get("points", [])
            ],
            dropped=int(data.get("dropped", 0)),
        )

    def to_pairs(self) -> list[list[float]]:
        """Points in the provider's ``[timestamp, price]`` pair form."""
        return [[p.timestamp, p.price] for p in self.points]


@dataclass
class AliasFailure:
    """Why one alias of a batch request produced no snapshot."""

    alias: str
    error: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"alias": self.alias, "error": self.error, "message": self.message}


@dataclass
class OverviewResult:
    """Snapshots in request order plus per-alias failures."""

    snapshots: list[MarketSnapshot] = field(default_factory=list)
    failures: list[AliasFailure] = field(default_factory=list)


@dataclass
class AssetHistory:
    """A history series together with the asset and range it was fetched for."""

    asset: AssetEntry
    days: int
    series: HistorySeries

    def meta(self) -> dict[str, Any]:
        return {
            "id": self.asset.id,
            "symbol": self.asset.symbol,
            "days": self.days,
            "count": len(self.series),
            "dropped": self.series.dropped,
        }
