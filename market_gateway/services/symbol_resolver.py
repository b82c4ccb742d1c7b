"""Alias to canonical provider id resolution."""

from collections.abc import Iterable, Sequence
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from market_gateway.models.market_data import AssetEntry
from market_gateway.services.errors import UnknownAsset

# Built-in table; ASSET_TABLE_PATH replaces it wholesale
DEFAULT_ASSETS: tuple[AssetEntry, ...] = (
    AssetEntry("bitcoin", "BTC", "Bitcoin", ("xbt",)),
    AssetEntry("ethereum", "ETH", "Ethereum", ("ether",)),
    AssetEntry("solana", "SOL", "Solana"),
    AssetEntry("binancecoin", "BNB", "BNB", ("binance coin",)),
    AssetEntry("dogecoin", "DOGE", "Dogecoin"),
    AssetEntry("ripple", "XRP", "XRP"),
    AssetEntry("cardano", "ADA", "Cardano"),
    AssetEntry("litecoin", "LTC", "Litecoin"),
    AssetEntry("bitcoin-cash", "BCH", "Bitcoin Cash"),
    AssetEntry("polkadot", "DOT", "Polkadot"),
    AssetEntry("tron", "TRX", "TRON"),
    AssetEntry("chainlink", "LINK", "Chainlink"),
    AssetEntry("avalanche-2", "AVAX", "Avalanche"),
    AssetEntry("matic-network", "MATIC", "Polygon", ("polygon",)),
    AssetEntry("tether", "USDT", "Tether"),
    AssetEntry("usd-coin", "USDC", "USDC", ("usd coin",)),
)


def normalize_alias(alias: str) -> str:
    return alias.strip().lower()


class AssetEntryModel(BaseModel):
    """Schema of one entry in an asset table JSON file."""

    id: str = Field(min_length=1)
    symbol: str = Field(min_length=1)
    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        return value.strip()

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        return value.strip().upper()

    def to_entry(self) -> AssetEntry:
        return AssetEntry(self.id, self.symbol, self.name.strip(), tuple(self.aliases))


_table_adapter = TypeAdapter(list[AssetEntryModel])


def load_asset_table(path: str | Path) -> tuple[AssetEntry, ...]:
    """
    Load a symbol table from a JSON file.

    The file holds a list of ``{"id", "symbol", "name", "aliases"?}`` objects.

    Raises:
        OSError: If the file cannot be read
        pydantic.ValidationError: If the content does not match the schema
    """
    text = Path(path).read_text(encoding="utf-8")
    return tuple(model.to_entry() for model in _table_adapter.validate_json(text))


class SymbolResolver:
    """
    Case-insensitive lookup from aliases to canonical asset ids.

    Each entry answers to its id, symbol, name and extra aliases. The table is
    frozen at construction; concurrent reads need no locking.
    """

    def __init__(self, entries: Iterable[AssetEntry]):
        by_id: dict[str, AssetEntry] = {}
        index: dict[str, str] = {}

        for entry in entries:
            if entry.id in by_id:
                raise ValueError(f"Duplicate asset id in symbol table: {entry.id}")
            by_id[entry.id] = entry

            for alias in (entry.id, entry.symbol, entry.name, *entry.aliases):
                key = normalize_alias(alias)
                if not key:
                    continue
                existing = index.get(key)
                if existing is not None and existing != entry.id:
                    raise ValueError(
                        f"Alias {key!r} maps to both {existing!r} and {entry.id!r}"
                    )
                index[key] = entry.id

        self._entries = MappingProxyType(by_id)
        self._index = MappingProxyType(index)

    def resolve(self, alias: str) -> str:
        """
        Resolve one alias.

        Raises:
            UnknownAsset: If the alias is blank or not in the table
        """
        asset_id = self._index.get(normalize_alias(alias)) if isinstance(alias, str) else None
        if asset_id is None:
            raise UnknownAsset(alias if isinstance(alias, str) else repr(alias))
        return asset_id

    def resolve_many(self, aliases: Sequence[str]) -> list[str]:
        """Resolve every alias, keeping input order; fails on the first unknown one."""
        return [self.resolve(alias) for alias in aliases]

    def entry_for(self, asset_id: str) -> AssetEntry:
        return self._entries[asset_id]

    def entries(self) -> list[AssetEntry]:
        return list(self._entries.values())

    def __contains__(self, alias: object) -> bool:
        return isinstance(alias, str) and normalize_alias(alias) in self._index

    def __len__(self) -> int:
        return len(self._entries)


def unique_ids(ids: Iterable[str]) -> list[str]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(ids))


def build_resolver(asset_table_path: str | None = None) -> SymbolResolver:
    """Build the process-wide resolver from a table file or the built-in table."""
    entries = load_asset_table(asset_table_path) if asset_table_path else DEFAULT_ASSETS
    return SymbolResolver(entries)
