"""
Market Brain — Engine Payload Models
─────────────────────────────────────
Canonical shapes the engine hands to the HTTP layer and stores in cache.
Provider-specific field names never get past the adapters; everything
here is already normalised.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from market_engine.models.candles import Candle

ASSET_STOCK    = "stock"
ASSET_CRYPTO   = "crypto"
ASSET_CONTRACT = "contract"


@dataclass(frozen=True)
class AssetClassification:
    asset_class:      str                 # "stock" | "crypto" | "contract"
    symbol:           str                 # normalised, upper-case (addresses keep their case)
    network:          Optional[str] = None
    contract_address: Optional[str] = None
    base:             Optional[str] = None   # crypto pair split: BTC-USD → BTC
    quote:            Optional[str] = None   #                            → USD
    explicit_network: bool = False        # user wrote SYMBOL:network

    @property
    def is_contract(self) -> bool:
        return self.asset_class == ASSET_CONTRACT


@dataclass(frozen=True)
class ProviderAttempt:
    provider_id: str
    started_at:  float
    outcome:     str                     # "success" | "error"
    error_kind:  Optional[str] = None
    detail:      Optional[str] = None
    elapsed_s:   float = 0.0

    def to_dict(self) -> dict:
        return {
            "provider":   self.provider_id,
            "started_at": round(self.started_at, 3),
            "outcome":    self.outcome,
            "error_kind": self.error_kind,
            "detail":     self.detail,
            "elapsed_s":  round(self.elapsed_s, 3),
        }


@dataclass(frozen=True)
class ChartResult:
    symbol:           str
    interval:         str
    source:           str
    candles:          Tuple[Candle, ...]
    network:          Optional[str] = None
    contract_address: Optional[str] = None
    attempts:         Tuple[ProviderAttempt, ...] = ()

    def to_dict(self) -> dict:
        d = {
            "symbol":   self.symbol,
            "interval": self.interval,
            "source":   self.source,
            "candles":  [c.to_dict() for c in self.candles],
        }
        if self.network:
            d["network"] = self.network
        if self.contract_address:
            d["contract_address"] = self.contract_address
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ChartResult":
        return cls(
            symbol=d["symbol"],
            interval=d["interval"],
            source=d["source"],
            candles=tuple(Candle.from_dict(c) for c in d.get("candles", [])),
            network=d.get("network"),
            contract_address=d.get("contract_address"),
        )


@dataclass(frozen=True)
class QuoteResult:
    symbol:         str
    price:          float
    change:         float
    change_percent: float
    volume:         float
    previous_close: float
    source:         str
    name:           Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "symbol":         self.symbol,
            "name":           self.name or self.symbol,
            "price":          self.price,
            "change":         self.change,
            "change_percent": self.change_percent,
            "volume":         self.volume,
            "previous_close": self.previous_close,
            "source":         self.source,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "QuoteResult":
        return cls(
            symbol=d["symbol"], price=d["price"], change=d["change"],
            change_percent=d["change_percent"], volume=d["volume"],
            previous_close=d["previous_close"], source=d["source"], name=d.get("name"),
        )


@dataclass(frozen=True)
class MoverItem:
    symbol:            str
    name:              str
    price:             float
    change_percent:    float
    volume:            float
    market_cap_or_tvl: float
    source:            str
    sector:            str = "Unknown"
    network:           Optional[str] = None
    contract_address:  Optional[str] = None

    @property
    def key(self) -> str:
        return self.symbol.upper()

    @property
    def badge(self) -> Optional[str]:
        move = abs(self.change_percent)
        if move > 10:
            return "hot"
        if move > 5:
            return "trending"
        return None

    def to_dict(self) -> dict:
        return {
            "symbol":            self.symbol,
            "name":              self.name,
            "price":             self.price,
            "change_percent":    self.change_percent,
            "volume":            self.volume,
            "market_cap_or_tvl": self.market_cap_or_tvl,
            "source":            self.source,
            "sector":            self.sector,
            "network":           self.network,
            "contract_address":  self.contract_address,
            "badge":             self.badge,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MoverItem":
        return cls(
            symbol=d["symbol"], name=d.get("name") or d["symbol"], price=d["price"],
            change_percent=d["change_percent"], volume=d["volume"],
            market_cap_or_tvl=d["market_cap_or_tvl"], source=d["source"],
            sector=d.get("sector") or "Unknown", network=d.get("network"),
            contract_address=d.get("contract_address"),
        )


@dataclass(frozen=True)
class HeatmapStats:
    gainers:      int
    losers:       int
    avg_change:   float
    top_gainer:   Optional[MoverItem]
    top_loser:    Optional[MoverItem]
    total_volume: float

    def to_dict(self) -> dict:
        return {
            "gainers":      self.gainers,
            "losers":       self.losers,
            "avg_change":   round(self.avg_change, 4),
            "top_gainer":   self.top_gainer.to_dict() if self.top_gainer else None,
            "top_loser":    self.top_loser.to_dict() if self.top_loser else None,
            "total_volume": self.total_volume,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "HeatmapStats":
        top_gainer = d.get("top_gainer")
        top_loser  = d.get("top_loser")
        return cls(
            gainers=d["gainers"], losers=d["losers"], avg_change=d["avg_change"],
            top_gainer=MoverItem.from_dict(top_gainer) if top_gainer else None,
            top_loser=MoverItem.from_dict(top_loser) if top_loser else None,
            total_volume=d["total_volume"],
        )


@dataclass(frozen=True)
class HeatmapResult:
    kind:  str
    items: Tuple[MoverItem, ...]
    stats: HeatmapStats

    def to_dict(self) -> dict:
        return {
            "kind":  self.kind,
            "items": [i.to_dict() for i in self.items],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "HeatmapResult":
        return cls(
            kind=d["kind"],
            items=tuple(MoverItem.from_dict(i) for i in d.get("items", [])),
            stats=HeatmapStats.from_dict(d["stats"]),
        )


@dataclass(frozen=True)
class ScreenFilters:
    min_price:      Optional[float] = None
    max_price:      Optional[float] = None
    min_volume:     Optional[float] = None
    min_market_cap: Optional[float] = None
    max_market_cap: Optional[float] = None
    change:         str = "all"          # "all" | "gainers" | "losers"
    sort_by:        str = "volume"       # see movers.SORT_KEYS
    limit:          Optional[int] = None

    def cache_key(self) -> str:
        return (f"{self.min_price}|{self.max_price}|{self.min_volume}|"
                f"{self.min_market_cap}|{self.max_market_cap}|{self.change}|"
                f"{self.sort_by}|{self.limit}")


@dataclass(frozen=True)
class SearchHit:
    symbol:           str
    name:             str
    asset_type:       str                # "stock" | "crypto"
    source:           str
    exchange:         Optional[str] = None
    network:          Optional[str] = None
    contract_address: Optional[str] = None
    pool_address:     Optional[str] = None
    price:            Optional[float] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class SearchResult:
    query:       str
    stocks:      Tuple[SearchHit, ...] = ()
    crypto:      Tuple[SearchHit, ...] = ()
    search_type: str = "text"            # "text" | "contract_address"
    timestamp:   float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "query":       self.query,
            "stocks":      [h.to_dict() for h in self.stocks],
            "crypto":      [h.to_dict() for h in self.crypto],
            "search_type": self.search_type,
            "timestamp":   int(self.timestamp),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SearchResult":
        return cls(
            query=d["query"],
            stocks=tuple(SearchHit(**h) for h in d.get("stocks", [])),
            crypto=tuple(SearchHit(**h) for h in d.get("crypto", [])),
            search_type=d.get("search_type", "text"),
            timestamp=d.get("timestamp", time.time()),
        )


def movers_from_dicts(items: List[Dict[str, Any]]) -> Tuple[MoverItem, ...]:
    return tuple(MoverItem.from_dict(d) for d in items)
