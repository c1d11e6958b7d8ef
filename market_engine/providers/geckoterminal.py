"""
Market Brain — GeckoTerminal Adapters
──────────────────────────────────────
DEX data across chains (free API, no key). JSON:API documents throughout.

  geckoterminal           symbol → most liquid matching pool → OHLCV
  geckoterminal-contract  address → first network that knows the token
                          → its top pool → OHLCV

Endpoints (base https://api.geckoterminal.com/api/v2):
  /search/pools?query=&network=
  /networks/{net}/tokens/{address}/pools
  /networks/{net}/tokens/{address}
  /networks/{net}/trending_pools
  /networks/{net}/pools/{pool}/ohlcv/{timeframe}?aggregate=&limit=&before_timestamp=
      data.attributes.ohlcv_list = [[ts, o, h, l, c, v], ...] newest first

OHLCV pages hold at most 1000 rows and walk back with before_timestamp.
Intervals GeckoTerminal cannot serve natively (30m, 1W, 1M) are fetched
at a finer step and widened with resample_candles().
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from market_engine.classifier import STABLECOINS
from market_engine.errors import NotFound, RateLimited, UpstreamUnavailable
from market_engine.intervals import IntervalSpec
from market_engine.models import (
    ASSET_CRYPTO, AssetClassification, Candle, MoverItem, QuoteResult, SearchHit, to_float,
)
from market_engine.pagination import paginate_backward
from market_engine.providers.base import (
    CandleProvider, MoverSource, QuoteSource, SearchSource, Series,
)
from market_engine.providers.http import get_json
from market_engine.synth import resample_candles

log = logging.getLogger("mb.engine.geckoterminal")

BASE_URL  = "https://api.geckoterminal.com/api/v2"
PAGE_SIZE = 1000          # GeckoTerminal max per OHLCV request
MAX_RAW_ROWS = 3000       # cap for resampled intervals

# Scan order for a bare EVM address
CONTRACT_NETWORKS = ["eth", "bsc", "base", "arbitrum", "polygon_pos", "avax"]

TVL_FLOOR    = 1000.0     # trending pools thinner than this are noise
SEARCH_LIMIT = 20

TIMEFRAME_MINUTES = {"minute": 1, "hour": 60, "day": 1440}


# ══════════════════════════════════════════════════════════════
# PURE PARSERS
# ══════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class PoolInfo:
    network:        str
    pool_address:   str
    name:           str
    base_symbol:    str
    base_address:   Optional[str]
    price:          float
    change_percent: float
    volume:         float
    tvl:            float
    market_cap:     float


def _split_id(jsonapi_id: str) -> Tuple[str, str]:
    """'polygon_pos_0xabc' → ('polygon_pos', '0xabc')."""
    if "_" not in jsonapi_id:
        return "", jsonapi_id
    network, address = jsonapi_id.rsplit("_", 1)
    return network, address


def pool_base_symbol(name: str) -> str:
    head = (name or "").split("/")[0].strip()
    return (head.split(" ")[0] if head else "UNKNOWN").upper()


def is_stablecoin_pair(name: str) -> bool:
    if not name:
        return False
    parts = [p.strip().split(" ")[0].upper() for p in name.split("/")]
    return sum(1 for p in parts if p in STABLECOINS) >= 2


def parse_pool(pool: dict) -> Optional[PoolInfo]:
    attrs = pool.get("attributes") or {}
    network, pool_address = _split_id(pool.get("id") or "")
    pool_address = attrs.get("address") or pool_address
    if not pool_address:
        return None

    base_ref = (((pool.get("relationships") or {}).get("base_token") or {}).get("data") or {})
    _, base_address = _split_id(base_ref.get("id") or "")

    name = attrs.get("name") or ""
    return PoolInfo(
        network        = network,
        pool_address   = pool_address,
        name           = name,
        base_symbol    = pool_base_symbol(name),
        base_address   = base_address or None,
        price          = to_float(attrs.get("base_token_price_usd")) or 0.0,
        change_percent = to_float((attrs.get("price_change_percentage") or {}).get("h24")) or 0.0,
        volume         = to_float((attrs.get("volume_usd") or {}).get("h24")) or 0.0,
        tvl            = to_float(attrs.get("reserve_in_usd")) or 0.0,
        market_cap     = to_float(attrs.get("market_cap_usd")) or to_float(attrs.get("fdv_usd")) or 0.0,
    )


def parse_pools(doc) -> List[PoolInfo]:
    rows = (doc or {}).get("data") or []
    if isinstance(rows, dict):
        rows = [rows]
    return [p for p in (parse_pool(r) for r in rows) if p is not None]


def parse_ohlcv_rows(doc) -> List[list]:
    return (((doc or {}).get("data") or {}).get("attributes") or {}).get("ohlcv_list") or []


def ohlcv_to_candle(row: Sequence) -> Optional[Candle]:
    if not isinstance(row, (list, tuple)) or len(row) < 5:
        return None
    ts = to_float(row[0])
    o, h, l, c = (to_float(v) for v in row[1:5])
    if ts is None or None in (o, h, l, c):
        return None
    volume = to_float(row[5]) if len(row) > 5 else 0.0
    return Candle(time=int(ts), open=o, high=h, low=l, close=c, volume=volume or 0.0)


def pool_to_mover(pool: PoolInfo, source: str) -> MoverItem:
    return MoverItem(
        symbol            = pool.base_symbol,
        name              = pool.name,
        price             = pool.price,
        change_percent    = pool.change_percent,
        volume            = pool.volume,
        market_cap_or_tvl = pool.market_cap or pool.tvl,
        source            = source,
        sector            = "DEX",
        network           = pool.network,
        contract_address  = pool.base_address,
    )


def pool_to_hit(pool: PoolInfo, source: str) -> SearchHit:
    return SearchHit(
        symbol           = pool.base_symbol,
        name             = pool.name,
        asset_type       = ASSET_CRYPTO,
        source           = source,
        network          = pool.network,
        contract_address = pool.base_address,
        pool_address     = pool.pool_address,
        price            = pool.price,
    )


# ══════════════════════════════════════════════════════════════
# SHARED CLIENT
# ══════════════════════════════════════════════════════════════
class _GeckoTerminalBase(CandleProvider):

    async def _request(self, path: str, params: dict = None):
        return await get_json(self.client, self.provider_id, f"{BASE_URL}{path}",
                              params=params, timeout=self.timeout)

    async def search_pools(self, query: str, network: Optional[str] = None) -> List[PoolInfo]:
        params = {"query": query}
        if network:
            params["network"] = network
        return parse_pools(await self._request("/search/pools", params))

    async def fetch_ohlcv(self, pool: PoolInfo, spec: IntervalSpec) -> List[Candle]:
        path  = f"/networks/{pool.network}/pools/{pool.pool_address}/ohlcv/{spec.gt_timeframe}"
        step  = TIMEFRAME_MINUTES[spec.gt_timeframe] * spec.gt_aggregate
        target = spec.target_candles
        if spec.gt_resample_minutes:
            target = min(target * (spec.gt_resample_minutes // step), MAX_RAW_ROWS)

        async def fetch_page(before: Optional[int], limit: int):
            params = {"aggregate": spec.gt_aggregate, "limit": limit, "currency": "usd"}
            if before is not None:
                params["before_timestamp"] = before
            return parse_ohlcv_rows(await self._request(path, params))

        rows = await paginate_backward(
            fetch_page, target=target, page_size=PAGE_SIZE,
            timestamp_of=lambda row: int(row[0]),
        )
        candles = sorted(
            (c for c in (ohlcv_to_candle(r) for r in rows) if c is not None),
            key=lambda c: c.time,
        )
        if spec.gt_resample_minutes:
            candles = resample_candles(candles, spec.gt_resample_minutes)
        return candles


# ══════════════════════════════════════════════════════════════
# SYMBOL → POOL
# ══════════════════════════════════════════════════════════════
class GeckoTerminal(_GeckoTerminalBase, MoverSource, SearchSource):

    provider_id = "geckoterminal"

    async def find_pool(self, asset: AssetClassification) -> PoolInfo:
        base  = (asset.base or asset.symbol).upper()
        pools = await self.search_pools(base, asset.network)
        matches = [p for p in pools if p.base_symbol == base and not is_stablecoin_pair(p.name)]
        if not matches:
            where = f" on {asset.network}" if asset.network else ""
            raise NotFound(self.provider_id, f"no pool for {base}{where}")
        return max(matches, key=lambda p: p.tvl)

    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> Series:
        pool = await self.find_pool(asset)
        log.info(f"{asset.symbol} → {pool.network} pool {pool.pool_address} (tvl ${pool.tvl:,.0f})")
        candles = await self.fetch_ohlcv(pool, spec)
        return Series(candles=candles, network=pool.network, contract_address=pool.base_address)

    async def fetch_movers(self, params: Optional[dict] = None) -> List[MoverItem]:
        network = (params or {}).get("network") or "bsc"
        doc   = await self._request(f"/networks/{network}/trending_pools")
        pools = parse_pools(doc)
        return [
            pool_to_mover(p, self.provider_id)
            for p in pools
            if not is_stablecoin_pair(p.name) and p.tvl > TVL_FLOOR
        ]

    async def search(self, query: str, network: Optional[str] = None) -> List[SearchHit]:
        if not query or len(query) < 2:
            return []
        pools = await self.search_pools(query, network)
        return [pool_to_hit(p, self.provider_id) for p in pools[:SEARCH_LIMIT]]


# ══════════════════════════════════════════════════════════════
# CONTRACT → NETWORK → POOL
# ══════════════════════════════════════════════════════════════
class GeckoTerminalContract(_GeckoTerminalBase, QuoteSource):

    provider_id = "geckoterminal-contract"

    @staticmethod
    def candidate_networks(asset: AssetClassification) -> List[str]:
        if asset.explicit_network and asset.network:
            return [asset.network]
        if asset.network == "solana":
            return ["solana"]
        return list(CONTRACT_NETWORKS)

    async def _scan(self, asset: AssetClassification, path_for):
        """
        Try each candidate network in order; first document with data wins.
        RateLimited stops the scan. Per-network 404s and outages move on.
        """
        address = asset.contract_address or asset.symbol
        outages = []
        for network in self.candidate_networks(asset):
            try:
                doc = await self._request(path_for(network, address))
            except NotFound:
                continue
            except RateLimited:
                raise
            except UpstreamUnavailable as e:
                log.warning(f"{address[:10]}… on {network}: {e}")
                outages.append(network)
                continue
            if (doc or {}).get("data"):
                return network, doc
        if outages:
            raise UpstreamUnavailable(self.provider_id, f"unreachable on {', '.join(outages)}")
        raise NotFound(self.provider_id, f"contract {address} not found on any network")

    async def find_pool(self, asset: AssetClassification) -> PoolInfo:
        network, doc = await self._scan(
            asset, lambda net, addr: f"/networks/{net}/tokens/{addr}/pools",
        )
        pools = parse_pools(doc)
        if not pools:
            raise NotFound(self.provider_id, f"no pools for {asset.symbol} on {network}")
        top = pools[0]
        if not top.network:
            top = replace(top, network=network)
        return top

    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> Series:
        pool = await self.find_pool(asset)
        log.info(f"contract {asset.symbol[:10]}… found on {pool.network}")
        candles = await self.fetch_ohlcv(pool, spec)
        return Series(candles=candles, network=pool.network,
                      contract_address=asset.contract_address)

    async def fetch_token(self, asset: AssetClassification) -> Tuple[str, dict]:
        network, doc = await self._scan(
            asset, lambda net, addr: f"/networks/{net}/tokens/{addr}",
        )
        return network, (doc.get("data") or {}).get("attributes") or {}

    async def fetch_quote(self, asset: AssetClassification) -> QuoteResult:
        network, attrs = await self.fetch_token(asset)
        price = to_float(attrs.get("price_usd"))
        if price is None:
            raise NotFound(self.provider_id, f"no price for {asset.symbol} on {network}")
        pct  = to_float((attrs.get("price_change_percentage") or {}).get("h24")) or 0.0
        prev = price / (1 + pct / 100) if pct > -100 else price
        return QuoteResult(
            symbol         = (attrs.get("symbol") or asset.symbol).upper(),
            price          = price,
            change         = price - prev,
            change_percent = pct,
            volume         = to_float((attrs.get("volume_usd") or {}).get("h24")) or 0.0,
            previous_close = prev,
            source         = self.provider_id,
            name           = attrs.get("name"),
        )

    async def lookup(self, asset: AssetClassification) -> SearchHit:
        """Contract-address search: one hit naming the network it lives on."""
        network, attrs = await self.fetch_token(asset)
        return SearchHit(
            symbol           = (attrs.get("symbol") or "UNKNOWN").upper(),
            name             = attrs.get("name") or asset.symbol,
            asset_type       = ASSET_CRYPTO,
            source           = self.provider_id,
            network          = network,
            contract_address = asset.contract_address,
            price            = to_float(attrs.get("price_usd")),
        )

