"""
Market Brain — Market Data Engine
──────────────────────────────────
The one object the HTTP layer talks to. Owns the shared httpx client,
the provider adapters, one TTLCache per data type, and the optional
Redis mirror. Create once at startup, close at shutdown.

Usage:
    async with MarketDataEngine(EngineConfig.from_env()) as engine:
        chart = await engine.get_chart("BTC-USD", "1h")
        return chart.to_dict()

Operations:
    get_chart(symbol, interval)  → ChartResult
    get_quote(symbol)            → QuoteResult
    get_heatmap(kind, params)    → HeatmapResult
    screen(asset_class, filters) → List[MoverItem]
    search(query, network)       → SearchResult
    get_overview(symbol)         → dict (Alpha Vantage OVERVIEW)
"""

import logging
from typing import Dict, List, Optional

import httpx
import redis.asyncio as aioredis

from market_engine.cache import TTL, TTLCache, chart_ttl_name
from market_engine.classifier import classify_symbol
from market_engine.config import EngineConfig
from market_engine.errors import InvalidSymbol
from market_engine.intervals import interval_spec
from market_engine.models import (
    ASSET_CONTRACT, ASSET_CRYPTO, ASSET_STOCK, ChartResult, HeatmapResult, MoverItem, QuoteResult,
    ScreenFilters, SearchResult, movers_from_dicts,
)
from market_engine.orchestrator import ChartOrchestrator, MoversAggregator
from market_engine.providers import (
    AlphaVantage, AlphaVantageDigital, Binance, CoinGecko, GeckoTerminal,
    GeckoTerminalContract, make_client,
)

log = logging.getLogger("mb.engine")

# How each cache turns a Redis JSON document back into a payload
DECODERS = {
    "live":         ChartResult.from_dict,
    "candles":      ChartResult.from_dict,
    "quote":        QuoteResult.from_dict,
    "heatmap":      HeatmapResult.from_dict,
    "screener":     movers_from_dicts,
    "search":       SearchResult.from_dict,
    "fundamentals": dict,
}


class MarketDataEngine:

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        redis: Optional[aioredis.Redis] = None,
    ):
        self.config       = config or EngineConfig.from_env()
        self._owns_client = client is None
        self.client       = client or make_client(transport, timeout=self.config.provider_timeout_s)
        self.redis        = redis
        self.caches: Dict[str, TTLCache] = {}
        self._build_caches()

        cfg     = self.config
        timeout = cfg.provider_timeout_s
        self.alphavantage  = AlphaVantage(self.client, cfg.alpha_vantage_key, timeout)
        self.av_digital    = AlphaVantageDigital(self.client, cfg.alpha_vantage_key, timeout)
        self.coingecko     = CoinGecko(self.client, cfg.coingecko_key, cfg.coingecko_base_url, timeout)
        self.binance       = Binance(self.client, timeout)
        self.geckoterminal = GeckoTerminal(self.client, timeout)
        self.gt_contract   = GeckoTerminalContract(self.client, timeout)

        self.chart = ChartOrchestrator(
            providers={
                p.provider_id: p for p in (
                    self.alphavantage, self.av_digital, self.coingecko,
                    self.binance, self.geckoterminal, self.gt_contract,
                )
            },
            caches=self.caches,
            timeout_s=timeout,
            chain_max_length=cfg.chain_max_length,
            max_candles=cfg.max_candles,
        )
        self.movers = MoversAggregator(
            movers={
                "alphavantage":  self.alphavantage,
                "coingecko":     self.coingecko,
                "geckoterminal": self.geckoterminal,
            },
            searchers={
                "alphavantage":  self.alphavantage,
                "coingecko":     self.coingecko,
                "geckoterminal": self.geckoterminal,
            },
            contract_lookup=self.gt_contract,
            caches=self.caches,
            dex_networks=cfg.heatmap_dex_networks,
            heatmap_limit=cfg.heatmap_limit,
            screener_limit=cfg.screener_limit,
        )

    def _build_caches(self):
        decode_ok = self.redis is not None
        for name in TTL:
            self.caches[name] = TTLCache(
                name, self.config.ttl_for(name),
                redis=self.redis,
                decode=DECODERS.get(name) if decode_ok else None,
            )

    # ── Lifecycle ─────────────────────────────────────────────
    async def connect_redis(self) -> Optional[aioredis.Redis]:
        """Attach the Redis mirror if REDIS_URL is set and reachable."""
        if self.redis is not None or not self.config.redis_url:
            return self.redis
        try:
            client = aioredis.from_url(self.config.redis_url, decode_responses=True, socket_timeout=2)
            await client.ping()
        except Exception as e:
            log.warning(f"Redis unavailable ({e}) - using in-memory cache")
            return None
        log.info("Redis connected")
        self.redis = client
        for name, cache in self.caches.items():
            cache.attach_redis(client, DECODERS.get(name))
        return client

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def __aenter__(self) -> "MarketDataEngine":
        await self.connect_redis()
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    # ── Operations ────────────────────────────────────────────
    async def get_chart(self, symbol: str, interval: str) -> ChartResult:
        asset = classify_symbol(symbol)
        spec  = interval_spec(interval)
        return await self.chart.get_chart(asset, spec, chart_ttl_name(spec.name))

    async def get_quote(self, symbol: str) -> QuoteResult:
        asset = classify_symbol(symbol)
        if asset.asset_class == ASSET_CONTRACT:
            source = self.gt_contract
        elif asset.asset_class == ASSET_CRYPTO:
            source = self.coingecko
        else:
            source = self.alphavantage
        key = f"{asset.symbol}|{asset.network or ''}"
        return await self.caches["quote"].get_or_fetch(key, lambda: source.fetch_quote(asset))

    async def get_heatmap(self, kind: str, params: Optional[dict] = None) -> HeatmapResult:
        return await self.movers.heatmap(kind, params)

    async def screen(self, asset_class: str, filters: Optional[ScreenFilters] = None) -> List[MoverItem]:
        return list(await self.movers.screen(asset_class, filters))

    async def search(self, query: str, network: Optional[str] = None) -> SearchResult:
        return await self.movers.search(query, network)

    async def get_overview(self, symbol: str) -> dict:
        asset = classify_symbol(symbol)
        if asset.asset_class != ASSET_STOCK:
            raise InvalidSymbol(f"Company overview is only available for stocks, not {asset.symbol}")
        return await self.caches["fundamentals"].get_or_fetch(
            asset.symbol, lambda: self.alphavantage.fetch_overview(asset.symbol),
        )
