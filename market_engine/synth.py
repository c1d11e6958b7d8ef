"""
Market Brain — OHLC Synthesizer
────────────────────────────────
Turns raw (timestamp_ms, price) points into fixed-width candles for
providers that only publish price points (CoinGecko market_chart).

  bucket start = floor(ts_ms / width_ms) * width_ms
  open         = first point seen in the bucket
  high / low   = running max / min
  close        = LAST point processed for the bucket

Input must be sorted ascending for open/close to mean anything.
Points with a non-finite or non-positive price are skipped.

Volume: a volume sample covers the price points between the previous
sample and itself, and is spread evenly over those points. When both
series share one spacing each sample lands on exactly one point and
volume simply sums per bucket.
"""

import bisect
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from market_engine.models.candles import Candle, to_float

MS_PER_MINUTE = 60_000

Point = Tuple[float, float]   # (timestamp_ms, value)


def _clean_points(points: Iterable[Sequence]) -> List[Point]:
    clean = []
    for p in points:
        if p is None or len(p) < 2:
            continue
        ts    = to_float(p[0])
        price = to_float(p[1])
        if ts is None or price is None or price <= 0:
            continue
        clean.append((ts, price))
    return clean


def _volume_shares(points: List[Point], volumes: Optional[Iterable[Sequence]]) -> List[float]:
    """Volume credited to each price point, index-aligned with `points`."""
    shares = [0.0] * len(points)
    if not volumes or not points:
        return shares

    samples = []
    for v in volumes:
        if v is None or len(v) < 2:
            continue
        ts  = to_float(v[0])
        vol = to_float(v[1])
        if ts is None or vol is None or vol < 0:
            continue
        samples.append((ts, vol))
    if not samples:
        return shares
    samples.sort(key=lambda s: s[0])
    sample_ts = [s[0] for s in samples]

    # each point belongs to the first sample at or after it; stragglers go to the last
    owner = []
    for ts, _ in points:
        idx = bisect.bisect_left(sample_ts, ts)
        owner.append(min(idx, len(samples) - 1))

    counts: Dict[int, int] = {}
    for idx in owner:
        counts[idx] = counts.get(idx, 0) + 1

    for i, idx in enumerate(owner):
        shares[i] = samples[idx][1] / counts[idx]
    return shares


def synthesize(points: Iterable[Sequence], bucket_minutes: int,
               volumes: Optional[Iterable[Sequence]] = None) -> List[Candle]:
    if bucket_minutes <= 0:
        raise ValueError("bucket_minutes must be positive")

    clean = _clean_points(points)
    if not clean:
        return []
    width_ms = bucket_minutes * MS_PER_MINUTE
    shares   = _volume_shares(clean, volumes)

    buckets: Dict[int, dict] = {}
    for (ts, price), vol in zip(clean, shares):
        start = int(math.floor(ts / width_ms) * width_ms)
        b = buckets.get(start)
        if b is None:
            buckets[start] = {"open": price, "high": price, "low": price,
                              "close": price, "volume": vol}
            continue
        b["high"]   = max(b["high"], price)
        b["low"]    = min(b["low"], price)
        b["close"]  = price
        b["volume"] += vol

    return [
        Candle(time=start // 1000, open=b["open"], high=b["high"], low=b["low"],
               close=b["close"], volume=b["volume"])
        for start, b in sorted(buckets.items())
    ]


def resample_candles(candles: Iterable[Candle], bucket_minutes: int) -> List[Candle]:
    """Widen ascending candles into `bucket_minutes` buckets (e.g. 15m → 30m, 1D → 1W)."""
    width_s = bucket_minutes * 60
    merged: Dict[int, Candle] = {}
    for c in candles:
        start = (c.time // width_s) * width_s
        prev = merged.get(start)
        if prev is None:
            merged[start] = Candle(time=start, open=c.open, high=c.high, low=c.low,
                                   close=c.close, volume=c.volume)
            continue
        merged[start] = Candle(
            time=start, open=prev.open, high=max(prev.high, c.high),
            low=min(prev.low, c.low), close=c.close, volume=prev.volume + c.volume,
        )
    return [merged[t] for t in sorted(merged)]
