"""
Market Brain — CoinGecko Adapter
─────────────────────────────────
Aggregated price points for crypto charts, plus simple-price quotes,
the /coins/markets mover list and /search.

CoinGecko has no OHLC for arbitrary buckets at our resolutions, so the
chart path fetches market_chart `prices` + `total_volumes` and hands
both to the synthesizer with the interval's bucket width.

Symbol → id resolution:
  1. static KNOWN_CRYPTO map (BTC → bitcoin)
  2. otherwise the lower-cased base, if it is a syntactically valid id
"""

import logging
import re
from typing import Dict, List, Optional

from market_engine.classifier import KNOWN_CRYPTO
from market_engine.config import COINGECKO_FREE_URL
from market_engine.errors import NotFound
from market_engine.intervals import IntervalSpec
from market_engine.models import (
    ASSET_CRYPTO, AssetClassification, Candle, MoverItem, QuoteResult, SearchHit, to_float,
)
from market_engine.providers.base import CandleProvider, MoverSource, QuoteSource, SearchSource
from market_engine.providers.http import get_json
from market_engine.synth import synthesize

log = logging.getLogger("mb.engine.coingecko")

COIN_ID = re.compile(r"^[a-z0-9-]{1,50}$")

SEARCH_LIMIT = 10


def validate_coingecko_id(coin_id: str) -> bool:
    if not coin_id or not COIN_ID.match(coin_id):
        return False
    if "--" in coin_id or coin_id.startswith("-") or coin_id.endswith("-"):
        return False
    return True


def coin_id_for(asset: AssetClassification) -> Optional[str]:
    base = (asset.base or asset.symbol).upper()
    if base in KNOWN_CRYPTO:
        return KNOWN_CRYPTO[base]
    candidate = base.lower()
    return candidate if validate_coingecko_id(candidate) else None


class CoinGecko(CandleProvider, QuoteSource, MoverSource, SearchSource):

    provider_id = "coingecko"

    def __init__(self, client, api_key: str = "", base_url: str = COINGECKO_FREE_URL,
                 timeout: float = 10.0):
        super().__init__(client, timeout)
        self.api_key  = api_key
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Optional[dict]:
        if not self.api_key:
            return None
        return {"x-cg-pro-api-key": self.api_key, "Accept": "application/json"}

    async def _request(self, path: str, params: dict = None):
        return await get_json(self.client, self.provider_id, f"{self.base_url}{path}",
                              params=params, headers=self._headers(), timeout=self.timeout)

    def _require_id(self, asset: AssetClassification) -> str:
        coin_id = coin_id_for(asset)
        if not coin_id:
            raise NotFound(self.provider_id, f"no CoinGecko id for {asset.symbol}")
        return coin_id

    # ── Chart ─────────────────────────────────────────────────
    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> List[Candle]:
        coin_id = self._require_id(asset)
        data = await self._request(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": "usd", "days": spec.coingecko_days},
        )
        prices = (data or {}).get("prices") or []
        if not prices:
            raise NotFound(self.provider_id, f"no price points for {coin_id}")
        return synthesize(prices, spec.bucket_minutes, data.get("total_volumes"))

    # ── Quotes ────────────────────────────────────────────────
    async def simple_prices(self, coin_ids: List[str]) -> Dict[str, dict]:
        data = await self._request("/simple/price", {
            "ids":                 ",".join(coin_ids),
            "vs_currencies":       "usd",
            "include_24hr_change": "true",
            "include_24hr_vol":    "true",
            "include_market_cap":  "true",
        })
        return data if isinstance(data, dict) else {}

    async def fetch_quote(self, asset: AssetClassification) -> QuoteResult:
        coin_id = self._require_id(asset)
        row = (await self.simple_prices([coin_id])).get(coin_id) or {}
        price = to_float(row.get("usd"))
        if price is None:
            raise NotFound(self.provider_id, f"no price for {coin_id}")
        pct  = to_float(row.get("usd_24h_change")) or 0.0
        prev = price / (1 + pct / 100) if pct > -100 else price
        return QuoteResult(
            symbol         = asset.symbol,
            price          = price,
            change         = price - prev,
            change_percent = pct,
            volume         = to_float(row.get("usd_24h_vol")) or 0.0,
            previous_close = prev,
            source         = self.provider_id,
        )

    # ── Movers ────────────────────────────────────────────────
    async def fetch_movers(self, params: Optional[dict] = None) -> List[MoverItem]:
        params = params or {}
        data = await self._request("/coins/markets", {
            "vs_currency":             "usd",
            "order":                   "market_cap_desc",
            "per_page":                min(int(params.get("limit") or 100), 250),
            "page":                    1,
            "sparkline":               "false",
            "price_change_percentage": "24h",
        })
        items = []
        for coin in data or []:
            price = to_float(coin.get("current_price"))
            if not coin.get("symbol") or price is None:
                continue
            items.append(MoverItem(
                symbol            = coin["symbol"].upper(),
                name              = coin.get("name") or coin["symbol"].upper(),
                price             = price,
                change_percent    = to_float(coin.get("price_change_percentage_24h")) or 0.0,
                volume            = to_float(coin.get("total_volume")) or 0.0,
                market_cap_or_tvl = to_float(coin.get("market_cap")) or 0.0,
                source            = self.provider_id,
                sector            = "Crypto",
            ))
        return items

    # ── Search ────────────────────────────────────────────────
    async def search(self, query: str, network: Optional[str] = None) -> List[SearchHit]:
        data = await self._request("/search", {"query": query})
        hits = []
        for coin in (data or {}).get("coins", [])[:SEARCH_LIMIT]:
            if not coin.get("symbol"):
                continue
            hits.append(SearchHit(
                symbol     = coin["symbol"].upper(),
                name       = coin.get("name") or coin["symbol"].upper(),
                asset_type = ASSET_CRYPTO,
                source     = self.provider_id,
            ))
        return hits
