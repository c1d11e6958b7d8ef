"""
Market Brain — Alpha Vantage Adapters
──────────────────────────────────────
Two chart providers and the stock-side quote / movers / search / overview
sources, all on https://www.alphavantage.co/query.

  alphavantage          TIME_SERIES_INTRADAY / DAILY / WEEKLY / MONTHLY
  alphavantage-digital  DIGITAL_CURRENCY_DAILY / WEEKLY / MONTHLY

Alpha Vantage answers 200 even when it refuses, so the body is checked
for markers before anything else:
  "Note" / "Information" → RateLimited
  "Error Message"        → NotFound
  series key missing     → UpstreamUnavailable

Series timestamps ("2024-01-05" or "2024-01-05 16:00:00") are read as UTC.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from market_engine.errors import NotFound, RateLimited, UpstreamUnavailable
from market_engine.intervals import IntervalSpec
from market_engine.models import (
    ASSET_STOCK, AssetClassification, Candle, MoverItem, QuoteResult, SearchHit, to_float,
)
from market_engine.providers.base import CandleProvider, MoverSource, QuoteSource, SearchSource
from market_engine.providers.http import get_json

log = logging.getLogger("mb.engine.alphavantage")

BASE_URL = "https://www.alphavantage.co/query"

# AV's digital series are quoted in fiat; stablecoin quotes map to USD
FIAT_FOR_QUOTE = {"USDT": "USD", "USDC": "USD", "BUSD": "USD"}

SEARCH_LIMIT = 8


# ══════════════════════════════════════════════════════════════
# PURE PARSERS
# ══════════════════════════════════════════════════════════════
def check_markers(provider_id: str, data) -> dict:
    if not isinstance(data, dict):
        raise UpstreamUnavailable(provider_id, "unexpected response shape")
    if "Note" in data or "Information" in data:
        raise RateLimited(provider_id, str(data.get("Note") or data.get("Information"))[:200])
    if "Error Message" in data:
        raise NotFound(provider_id, str(data["Error Message"])[:200])
    return data


def parse_timestamp(stamp: str) -> Optional[int]:
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            dt = datetime.strptime(stamp, fmt)
        except ValueError:
            continue
        return int(dt.replace(tzinfo=timezone.utc).timestamp())
    return None


def _field(values: dict, *keys) -> Optional[float]:
    for k in keys:
        v = to_float(values.get(k))
        if v is not None:
            return v
    return None


def parse_series(series: Dict[str, dict], market: Optional[str] = None) -> List[Candle]:
    """
    Keyed map → candles. With `market` set the digital-currency field names
    ("1a. open (USD)") win, falling back to the plain ones ("1. open").
    """
    candles = []
    for stamp, values in series.items():
        ts = parse_timestamp(stamp)
        if ts is None or not isinstance(values, dict):
            continue
        if market:
            o = _field(values, f"1a. open ({market})", "1. open")
            h = _field(values, f"2a. high ({market})", "2. high")
            l = _field(values, f"3a. low ({market})", "3. low")
            c = _field(values, f"4a. close ({market})", "4. close")
        else:
            o = _field(values, "1. open")
            h = _field(values, "2. high")
            l = _field(values, "3. low")
            c = _field(values, "4. close")
        if None in (o, h, l, c):
            continue
        v = _field(values, "5. volume") or 0.0
        candles.append(Candle(time=ts, open=o, high=h, low=l, close=c, volume=v))
    return candles


def _percent(raw) -> float:
    if isinstance(raw, str):
        raw = raw.replace("%", "").strip()
    return to_float(raw) or 0.0


def parse_global_quote(provider_id: str, symbol: str, data: dict) -> QuoteResult:
    quote = data.get("Global Quote") or {}
    price = to_float(quote.get("05. price"))
    if not quote or price is None:
        raise NotFound(provider_id, f"no quote for {symbol}")
    return QuoteResult(
        symbol         = quote.get("01. symbol") or symbol,
        price          = price,
        change         = to_float(quote.get("09. change")) or 0.0,
        change_percent = _percent(quote.get("10. change percent")),
        volume         = to_float(quote.get("06. volume")) or 0.0,
        previous_close = to_float(quote.get("08. previous close")) or 0.0,
        source         = provider_id,
    )


def parse_movers(provider_id: str, data: dict) -> List[MoverItem]:
    items = []
    for bucket in ("top_gainers", "top_losers", "most_actively_traded"):
        for row in data.get(bucket) or []:
            ticker = row.get("ticker")
            price  = to_float(row.get("price"))
            if not ticker or price is None:
                continue
            items.append(MoverItem(
                symbol            = ticker.upper(),
                name              = ticker.upper(),
                price             = price,
                change_percent    = _percent(row.get("change_percentage")),
                volume            = to_float(row.get("volume")) or 0.0,
                market_cap_or_tvl = 0.0,
                source            = provider_id,
            ))
    return items


def parse_search(provider_id: str, data: dict) -> List[SearchHit]:
    hits = []
    for match in data.get("bestMatches") or []:
        if match.get("3. type") != "Equity" or match.get("4. region") != "United States":
            continue
        hits.append(SearchHit(
            symbol     = match.get("1. symbol", ""),
            name       = match.get("2. name", ""),
            asset_type = ASSET_STOCK,
            source     = provider_id,
            exchange   = "NASDAQ/NYSE" if match.get("8. currency") == "USD" else match.get("4. region"),
        ))
        if len(hits) >= SEARCH_LIMIT:
            break
    return hits


# ══════════════════════════════════════════════════════════════
# ADAPTERS
# ══════════════════════════════════════════════════════════════
class AlphaVantage(CandleProvider, QuoteSource, MoverSource, SearchSource):

    provider_id = "alphavantage"

    def __init__(self, client, api_key: str = "", timeout: float = 10.0):
        super().__init__(client, timeout)
        self.api_key = api_key or "demo"

    async def _query(self, **params) -> dict:
        params["apikey"] = self.api_key
        data = await get_json(self.client, self.provider_id, BASE_URL,
                              params=params, timeout=self.timeout)
        return check_markers(self.provider_id, data)

    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> List[Candle]:
        params = {"function": spec.av_function, "symbol": asset.symbol}
        if spec.av_interval:
            params["interval"]   = spec.av_interval
            params["outputsize"] = "full"
        data = await self._query(**params)
        series = data.get(spec.av_series_key)
        if not isinstance(series, dict):
            raise UpstreamUnavailable(self.provider_id, f"missing '{spec.av_series_key}'")
        return parse_series(series)

    async def fetch_quote(self, asset: AssetClassification) -> QuoteResult:
        data = await self._query(function="GLOBAL_QUOTE", symbol=asset.symbol)
        return parse_global_quote(self.provider_id, asset.symbol, data)

    async def fetch_movers(self, params: Optional[dict] = None) -> List[MoverItem]:
        data = await self._query(function="TOP_GAINERS_LOSERS")
        return parse_movers(self.provider_id, data)

    async def search(self, query: str, network: Optional[str] = None) -> List[SearchHit]:
        data = await self._query(function="SYMBOL_SEARCH", keywords=query)
        return parse_search(self.provider_id, data)

    async def fetch_overview(self, symbol: str) -> dict:
        data = await self._query(function="OVERVIEW", symbol=symbol)
        if not data.get("Symbol"):
            raise NotFound(self.provider_id, f"no overview for {symbol}")
        return data


class AlphaVantageDigital(CandleProvider):
    """Daily-or-coarser exchange series for crypto pairs."""

    provider_id = "alphavantage-digital"

    def __init__(self, client, api_key: str = "", timeout: float = 10.0):
        super().__init__(client, timeout)
        self.api_key = api_key or "demo"

    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> List[Candle]:
        base   = asset.base or asset.symbol
        market = FIAT_FOR_QUOTE.get(asset.quote or "USD", asset.quote or "USD")
        params = {
            "function": spec.av_digital_function,
            "symbol":   base,
            "market":   market,
            "apikey":   self.api_key,
        }
        data = await get_json(self.client, self.provider_id, BASE_URL,
                              params=params, timeout=self.timeout)
        check_markers(self.provider_id, data)
        series = data.get(spec.av_digital_key)
        if not isinstance(series, dict):
            raise UpstreamUnavailable(self.provider_id, f"missing '{spec.av_digital_key}'")
        return parse_series(series, market=market)
