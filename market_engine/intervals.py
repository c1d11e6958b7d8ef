"""
Market Brain — Interval Table
──────────────────────────────
One row per chart interval. Every provider's native granularity for that
interval lives on the row, so adapters never branch on interval strings.

LIVE is an alias of 1m for every provider (Alpha Vantage 1min intraday,
Binance 1m klines, CoinGecko 1-day 5-minute points bucketed to 1m,
GeckoTerminal minute/1).

CoinGecko market_chart picks its own resolution from `days`:
  days = 1      → ~5-minute points
  days 2..90    → hourly points
  days > 90     → daily points
so each row asks for the smallest window whose native resolution is at or
below the bucket width.
"""

from dataclasses import dataclass
from typing import Optional, Union

from market_engine.errors import InvalidInterval

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class IntervalSpec:
    name:            str
    bucket_minutes:  int
    intraday:        bool
    target_candles:  int
    # Alpha Vantage: equities
    av_function:     str
    av_series_key:   str
    av_interval:     Optional[str]
    # Alpha Vantage: digital currency (daily exchange series)
    av_digital_function: str
    av_digital_key:      str
    # Binance klines
    binance_interval: str
    # CoinGecko market_chart
    coingecko_days:  Union[int, str]
    # GeckoTerminal OHLCV
    gt_timeframe:    str
    gt_aggregate:    int
    gt_resample_minutes: Optional[int] = None   # widen GT bars client-side


_AV_DIGITAL_DAILY   = ("DIGITAL_CURRENCY_DAILY",   "Time Series (Digital Currency Daily)")
_AV_DIGITAL_WEEKLY  = ("DIGITAL_CURRENCY_WEEKLY",  "Time Series (Digital Currency Weekly)")
_AV_DIGITAL_MONTHLY = ("DIGITAL_CURRENCY_MONTHLY", "Time Series (Digital Currency Monthly)")


def _intraday(name: str, minutes: int, av_interval: str, binance: str,
              cg_days: int, gt_tf: str, gt_agg: int, resample: Optional[int] = None) -> IntervalSpec:
    return IntervalSpec(
        name=name, bucket_minutes=minutes, intraday=True, target_candles=200,
        av_function="TIME_SERIES_INTRADAY", av_series_key=f"Time Series ({av_interval})",
        av_interval=av_interval,
        av_digital_function=_AV_DIGITAL_DAILY[0], av_digital_key=_AV_DIGITAL_DAILY[1],
        binance_interval=binance, coingecko_days=cg_days,
        gt_timeframe=gt_tf, gt_aggregate=gt_agg, gt_resample_minutes=resample,
    )


INTERVALS = {
    "1m":  _intraday("1m",  1,   "1min",  "1m",  1,  "minute", 1),
    "5m":  _intraday("5m",  5,   "5min",  "5m",  1,  "minute", 5),
    "15m": _intraday("15m", 15,  "15min", "15m", 1,  "minute", 15),
    "30m": _intraday("30m", 30,  "30min", "30m", 1,  "minute", 15, resample=30),
    "1h":  _intraday("1h",  60,  "60min", "1h",  7,  "hour",   1),
    "4h": IntervalSpec(
        name="4h", bucket_minutes=240, intraday=True, target_candles=200,
        av_function="TIME_SERIES_DAILY", av_series_key="Time Series (Daily)", av_interval=None,
        av_digital_function=_AV_DIGITAL_DAILY[0], av_digital_key=_AV_DIGITAL_DAILY[1],
        binance_interval="4h", coingecko_days=30, gt_timeframe="hour", gt_aggregate=4,
    ),
    "1D": IntervalSpec(
        name="1D", bucket_minutes=MINUTES_PER_DAY, intraday=False, target_candles=200,
        av_function="TIME_SERIES_DAILY", av_series_key="Time Series (Daily)", av_interval=None,
        av_digital_function=_AV_DIGITAL_DAILY[0], av_digital_key=_AV_DIGITAL_DAILY[1],
        binance_interval="1d", coingecko_days=200, gt_timeframe="day", gt_aggregate=1,
    ),
    "1W": IntervalSpec(
        name="1W", bucket_minutes=7 * MINUTES_PER_DAY, intraday=False, target_candles=200,
        av_function="TIME_SERIES_WEEKLY", av_series_key="Weekly Time Series", av_interval=None,
        av_digital_function=_AV_DIGITAL_WEEKLY[0], av_digital_key=_AV_DIGITAL_WEEKLY[1],
        binance_interval="1w", coingecko_days=1825, gt_timeframe="day", gt_aggregate=1,
        gt_resample_minutes=7 * MINUTES_PER_DAY,
    ),
    "1M": IntervalSpec(
        name="1M", bucket_minutes=30 * MINUTES_PER_DAY, intraday=False, target_candles=200,
        av_function="TIME_SERIES_MONTHLY", av_series_key="Monthly Time Series", av_interval=None,
        av_digital_function=_AV_DIGITAL_MONTHLY[0], av_digital_key=_AV_DIGITAL_MONTHLY[1],
        binance_interval="1M", coingecko_days="max", gt_timeframe="day", gt_aggregate=1,
        gt_resample_minutes=30 * MINUTES_PER_DAY,
    ),
}

ALIASES = {
    "LIVE": "1m", "live": "1m",
    "1min": "1m", "5min": "5m", "15min": "15m", "30min": "30m",
    "60m": "1h", "60min": "1h", "1H": "1h",
    "4H": "4h",
    "1d": "1D", "D": "1D",
    "1w": "1W", "W": "1W",
    "M": "1M",
}


def canonical_interval(interval: str) -> str:
    if not interval or not isinstance(interval, str):
        raise InvalidInterval("Interval is required")
    name = interval.strip()
    name = ALIASES.get(name, name)
    if name not in INTERVALS:
        raise InvalidInterval(f"Unsupported interval: {interval}")
    return name


def interval_spec(interval: str) -> IntervalSpec:
    return INTERVALS[canonical_interval(interval)]
