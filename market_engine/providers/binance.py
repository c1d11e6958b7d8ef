"""
Market Brain — Binance Klines Adapter
──────────────────────────────────────
Centralised-exchange candles for crypto pairs, quoted in USDT.

  GET /api/v3/klines?symbol=BTCUSDT&interval=1h&limit=1000[&endTime=]
  row = [openTime, open, high, low, close, volume, closeTime, ...]

Pages walk backward: endTime = oldest openTime of the previous page - 1ms.
An unknown pair comes back as HTTP 400 ("Invalid symbol") → NotFound.
"""

import logging
from typing import List, Optional

from market_engine.errors import NotFound, UpstreamUnavailable
from market_engine.intervals import IntervalSpec
from market_engine.models import AssetClassification, Candle, to_float
from market_engine.pagination import paginate_backward
from market_engine.providers.base import CandleProvider
from market_engine.providers.http import get_json

log = logging.getLogger("mb.engine.binance")

KLINES_URL = "https://api.binance.com/api/v3/klines"
PAGE_SIZE  = 1000   # Binance max per request

# Binance lists USD pairs against stablecoins
QUOTE_MAP = {"USD": "USDT"}


def binance_symbol(asset: AssetClassification) -> str:
    base  = (asset.base or asset.symbol).upper()
    quote = (asset.quote or "USD").upper()
    return f"{base}{QUOTE_MAP.get(quote, quote)}"


def parse_kline(row) -> Optional[Candle]:
    if not isinstance(row, (list, tuple)) or len(row) < 6:
        return None
    ts = to_float(row[0])
    o, h, l, c = (to_float(v) for v in row[1:5])
    if ts is None or None in (o, h, l, c):
        return None
    return Candle(time=int(ts) // 1000, open=o, high=h, low=l, close=c,
                  volume=to_float(row[5]) or 0.0)


class Binance(CandleProvider):

    provider_id = "binance"

    async def _fetch_raw(self, asset: AssetClassification, spec: IntervalSpec) -> List[Candle]:
        symbol = binance_symbol(asset)

        async def fetch_page(end_time: Optional[int], limit: int):
            params = {"symbol": symbol, "interval": spec.binance_interval, "limit": limit}
            if end_time is not None:
                params["endTime"] = end_time
            rows = await get_json(self.client, self.provider_id, KLINES_URL, params=params,
                                  timeout=self.timeout, not_found_statuses=(400, 404))
            if not isinstance(rows, list):
                raise UpstreamUnavailable(self.provider_id, "klines response was not a list")
            return rows

        rows = await paginate_backward(
            fetch_page,
            target=spec.target_candles,
            page_size=PAGE_SIZE,
            timestamp_of=lambda row: int(row[0]),
            next_cursor=lambda oldest: oldest - 1,
        )
        candles = [c for c in (parse_kline(r) for r in rows) if c is not None]
        if not candles:
            raise NotFound(self.provider_id, f"no klines for {symbol}")
        log.debug(f"{symbol} {spec.binance_interval}: {len(candles)} klines")
        return candles
