"""
Market Brain — Movers, Screener & Search Aggregation
─────────────────────────────────────────────────────
Union, not fallback: every source for a request runs concurrently, then
one synchronous merge.

  merge_movers(batches, sort_key, limit)
    1. concatenate batches in source-priority order
    2. dedupe by upper-cased symbol, FIRST occurrence wins
    3. drop stablecoins
    4. (screener) apply ScreenFilters
    5. sort, then cap

A source that raises contributes [] and a log line. Nothing on this path
raises because one upstream misbehaved.

Source plans per kind (highest priority first):
  stocks  alphavantage
  crypto  coingecko, then geckoterminal trending per network
  dex     geckoterminal trending per network
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from market_engine.cache import TTLCache
from market_engine.classifier import STABLECOINS, classify_symbol
from market_engine.errors import InvalidRequest, InvalidSymbol, NotFound, ProviderError
from market_engine.models import (
    HeatmapResult, HeatmapStats, MoverItem, ScreenFilters, SearchHit, SearchResult,
)
from market_engine.providers.base import MoverSource, SearchSource
from market_engine.providers.geckoterminal import GeckoTerminalContract

log = logging.getLogger("mb.engine.movers")

SEARCH_CRYPTO_LIMIT = 15

# ── Sort keys ─────────────────────────────────────────────────
# (key function, descending)
SORT_KEYS = {
    "change":      (lambda m: abs(m.change_percent), True),
    "change_desc": (lambda m: m.change_percent,      True),
    "change_asc":  (lambda m: m.change_percent,      False),
    "volume":      (lambda m: m.volume,              True),
    "market_cap":  (lambda m: m.market_cap_or_tvl,   True),
}

HEATMAP_KINDS  = ("stocks", "crypto", "dex")
SCREEN_CLASSES = {"stocks": "stocks", "stock": "stocks", "crypto": "crypto", "dex": "dex"}


# ══════════════════════════════════════════════════════════════
# PURE MERGE STEPS
# ══════════════════════════════════════════════════════════════
def sort_movers(items: Iterable[MoverItem], sort_key: str = "change") -> List[MoverItem]:
    if sort_key not in SORT_KEYS:
        raise InvalidRequest(f"Unknown sort key: {sort_key} (use {', '.join(SORT_KEYS)})")
    key, descending = SORT_KEYS[sort_key]
    return sorted(items, key=key, reverse=descending)


def passes_filters(item: MoverItem, f: ScreenFilters) -> bool:
    if f.min_price is not None and item.price < f.min_price:
        return False
    if f.max_price is not None and item.price > f.max_price:
        return False
    if f.min_volume is not None and item.volume < f.min_volume:
        return False
    if f.min_market_cap is not None and item.market_cap_or_tvl < f.min_market_cap:
        return False
    if f.max_market_cap is not None and item.market_cap_or_tvl > f.max_market_cap:
        return False
    if f.change == "gainers" and item.change_percent <= 0:
        return False
    if f.change == "losers" and item.change_percent >= 0:
        return False
    return True


def merge_movers(
    batches: Sequence[Sequence[MoverItem]],
    sort_key: str = "change",
    limit: Optional[int] = None,
    keep: Optional[Callable[[MoverItem], bool]] = None,
) -> List[MoverItem]:
    seen   = set()
    merged = []
    for batch in batches:
        for item in batch:
            key = item.key
            if key in seen:
                continue
            seen.add(key)
            if key in STABLECOINS:
                continue
            if keep is not None and not keep(item):
                continue
            merged.append(item)

    ranked = sort_movers(merged, sort_key)
    if limit is not None:
        ranked = ranked[:max(0, limit)]
    return ranked


def heatmap_stats(items: Sequence[MoverItem]) -> HeatmapStats:
    if not items:
        return HeatmapStats(gainers=0, losers=0, avg_change=0.0,
                            top_gainer=None, top_loser=None, total_volume=0.0)
    best  = max(items, key=lambda m: m.change_percent)
    worst = min(items, key=lambda m: m.change_percent)
    return HeatmapStats(
        gainers      = sum(1 for m in items if m.change_percent > 0),
        losers       = sum(1 for m in items if m.change_percent < 0),
        avg_change   = sum(m.change_percent for m in items) / len(items),
        top_gainer   = best if best.change_percent > 0 else None,
        top_loser    = worst if worst.change_percent < 0 else None,
        total_volume = sum(m.volume for m in items),
    )


def merge_search(cg_hits: Sequence[SearchHit], dex_hits: Sequence[SearchHit],
                 limit: int = SEARCH_CRYPTO_LIMIT) -> List[SearchHit]:
    """CoinGecko hits first; DEX hits only for symbols CoinGecko did not return."""
    seen   = set()
    merged = []
    for hit in list(cg_hits) + list(dex_hits):
        key = hit.symbol.upper()
        if key in seen:
            continue
        seen.add(key)
        merged.append(hit)
    return merged[:limit]


async def gather_sources(calls: Sequence[Tuple[str, Callable[[], Awaitable[list]]]]) -> List[list]:
    """
    Run every call concurrently; results come back in the order given.
    A failing call yields [] and is logged.
    """
    async def one(label: str, call) -> list:
        try:
            return list(await call())
        except Exception as e:
            log.warning(f"source {label} failed: {e}")
            return []

    return list(await asyncio.gather(*(one(label, call) for label, call in calls)))


# ══════════════════════════════════════════════════════════════
# AGGREGATOR
# ══════════════════════════════════════════════════════════════
class MoversAggregator:

    def __init__(
        self,
        movers: Dict[str, MoverSource],
        searchers: Dict[str, SearchSource],
        contract_lookup: Optional[GeckoTerminalContract],
        caches: Dict[str, TTLCache],
        dex_networks: Sequence[str] = ("bsc", "eth", "solana", "base"),
        heatmap_limit: int = 50,
        screener_limit: int = 100,
    ):
        self.movers          = movers
        self.searchers       = searchers
        self.contract_lookup = contract_lookup
        self.caches          = caches
        self.dex_networks    = tuple(dex_networks)
        self.heatmap_limit   = heatmap_limit
        self.screener_limit  = screener_limit

    def _calls(self, kind: str, networks: Sequence[str]):
        calls = []

        def add(source_id: str, params: Optional[dict] = None, label: str = None):
            source = self.movers.get(source_id)
            if source is None:
                return
            calls.append((label or source_id, lambda: source.fetch_movers(params)))

        if kind == "stocks":
            add("alphavantage")
        elif kind == "crypto":
            add("coingecko", {"limit": 100})
            for net in networks:
                add("geckoterminal", {"network": net}, f"geckoterminal:{net}")
        elif kind == "dex":
            for net in networks:
                add("geckoterminal", {"network": net}, f"geckoterminal:{net}")
        else:
            raise InvalidRequest(f"Unknown kind: {kind} (use {', '.join(HEATMAP_KINDS)})")
        return calls

    # ── Heatmap ───────────────────────────────────────────────
    async def heatmap(self, kind: str, params: Optional[dict] = None) -> HeatmapResult:
        params   = params or {}
        sort_key = params.get("sort") or "change"
        limit    = int(params.get("limit") or self.heatmap_limit)
        networks = tuple(params.get("networks") or self.dex_networks)
        calls    = self._calls(kind, networks)
        if sort_key not in SORT_KEYS:
            raise InvalidRequest(f"Unknown sort key: {sort_key}")

        async def build() -> HeatmapResult:
            batches = await gather_sources(calls)
            sourced.append(any(batches))
            items   = merge_movers(batches, sort_key, limit)
            log.info(f"heatmap {kind}: {len(items)} items from {len(calls)} source call(s)")
            return HeatmapResult(kind=kind, items=tuple(items), stats=heatmap_stats(items))

        sourced: List[bool] = []
        key = f"{kind}|{sort_key}|{limit}|{','.join(networks)}"
        return await self.caches["heatmap"].get_or_fetch(key, build, lambda _: all(sourced))

    # ── Screener ──────────────────────────────────────────────
    async def screen(self, asset_class: str, filters: Optional[ScreenFilters] = None) -> Tuple[MoverItem, ...]:
        kind = SCREEN_CLASSES.get((asset_class or "").lower())
        if kind is None:
            raise InvalidRequest(f"Unknown asset class: {asset_class}")
        filters = filters or ScreenFilters()
        if filters.sort_by not in SORT_KEYS:
            raise InvalidRequest(f"Unknown sort key: {filters.sort_by}")
        if filters.change not in ("all", "gainers", "losers"):
            raise InvalidRequest(f"Unknown change filter: {filters.change}")
        limit = filters.limit or self.screener_limit
        calls = self._calls(kind, self.dex_networks)

        async def build() -> Tuple[MoverItem, ...]:
            batches = await gather_sources(calls)
            sourced.append(any(batches))
            items = merge_movers(batches, filters.sort_by, limit,
                                 keep=lambda m: passes_filters(m, filters))
            return tuple(items)

        sourced: List[bool] = []
        key = f"{kind}|{filters.cache_key()}"
        return await self.caches["screener"].get_or_fetch(key, build, lambda _: all(sourced))

    # ── Search ────────────────────────────────────────────────
    async def search(self, query: str, network: Optional[str] = None) -> SearchResult:
        query = (query or "").strip()
        if not query:
            raise InvalidSymbol("Search query is required")

        async def build() -> SearchResult:
            asset = None
            try:
                asset = classify_symbol(query)
            except InvalidSymbol:
                pass   # free text is allowed to be messy

            if asset is not None and asset.is_contract:
                return await self._search_contract(query, asset)

            calls = []
            for source_id in ("alphavantage", "coingecko", "geckoterminal"):
                source = self.searchers.get(source_id)
                if source is not None:
                    calls.append((source_id, lambda s=source: s.search(query, network)))
            results = dict(zip((c[0] for c in calls), await gather_sources(calls)))
            return SearchResult(
                query  = query,
                stocks = tuple(results.get("alphavantage", [])),
                crypto = tuple(merge_search(results.get("coingecko", []),
                                            results.get("geckoterminal", []))),
            )

        key = f"{query.lower()}|{network or ''}"
        return await self.caches["search"].get_or_fetch(key, build)

    async def _search_contract(self, query: str, asset) -> SearchResult:
        hits = ()
        if self.contract_lookup is not None:
            try:
                hits = (await self.contract_lookup.lookup(asset),)
            except NotFound:
                log.info(f"contract {query[:10]}… not found on any network")
            except ProviderError as e:
                log.warning(f"contract lookup for {query[:10]}… failed: {e}")
        return SearchResult(query=query, crypto=hits, search_type="contract_address")
