"""
Market Brain — Candle Model
────────────────────────────
The canonical OHLCV bar every provider adapter must emit.

  time    unix seconds, bucket start
  open/high/low/close  finite, > 0
  volume  finite, >= 0

normalize_series() is the single exit gate for adapter output: sorted
ascending, de-duplicated by time (last write wins), non-finite bars
dropped, truncated to the newest `max_len` bars.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class Candle:
    time:   int
    open:   float
    high:   float
    low:    float
    close:  float
    volume: float = 0.0

    def to_dict(self) -> dict:
        return {
            "time":   self.time,
            "open":   self.open,
            "high":   self.high,
            "low":    self.low,
            "close":  self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Candle":
        return cls(
            time=int(d["time"]), open=float(d["open"]), high=float(d["high"]),
            low=float(d["low"]), close=float(d["close"]), volume=float(d.get("volume") or 0),
        )

    def is_valid(self) -> bool:
        prices = (self.open, self.high, self.low, self.close)
        if not all(math.isfinite(p) and p > 0 for p in prices):
            return False
        return math.isfinite(self.volume) and self.volume >= 0


def to_float(value) -> Optional[float]:
    """Parse an upstream number (often a string). None when unusable."""
    if value is None or value == "":
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def normalize_series(candles: Iterable[Candle], max_len: Optional[int] = None) -> List[Candle]:
    by_time = {}
    for c in candles:
        if c.is_valid():
            by_time[c.time] = c
    series = [by_time[t] for t in sorted(by_time)]
    if max_len is not None and len(series) > max_len:
        series = series[-max_len:]
    return series
