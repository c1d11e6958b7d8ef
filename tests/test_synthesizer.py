"""Property-based tests for the OHLC synthesizer and candle resampling."""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from market_engine.models import Candle
from market_engine.synth import resample_candles, synthesize

T0_MS = 1_699_999_200_000   # hour-aligned

prices = st.floats(min_value=0.0001, max_value=1e6, allow_nan=False, allow_infinity=False)


class TestBucketProperty:
    """
    For a bucket receiving points p1..pn in chronological order:
    open = p1, close = pn, high = max(p), low = min(p).
    """

    @given(values=st.lists(prices, min_size=1, max_size=60))
    @settings(max_examples=200)
    def test_single_bucket_ohlc(self, values):
        points = [[T0_MS + i * 1000, v] for i, v in enumerate(values)]
        candles = synthesize(points, bucket_minutes=60)

        assert len(candles) == 1
        c = candles[0]
        assert c.open == values[0]
        assert c.close == values[-1]
        assert c.high == max(values)
        assert c.low == min(values)
        assert c.time == T0_MS // 1000

    @given(
        values=st.lists(prices, min_size=1, max_size=200),
        step_min=st.sampled_from([1, 5, 15]),
        bucket=st.sampled_from([5, 15, 60, 240]),
    )
    @settings(max_examples=100)
    def test_buckets_are_ascending_and_aligned(self, values, step_min, bucket):
        points = [[T0_MS + i * step_min * 60_000, v] for i, v in enumerate(values)]
        candles = synthesize(points, bucket_minutes=bucket)

        times = [c.time for c in candles]
        assert times == sorted(set(times))
        for c in candles:
            assert c.time % (bucket * 60) == 0
            assert c.low <= min(c.open, c.close) <= max(c.open, c.close) <= c.high
            assert all(math.isfinite(v) for v in (c.open, c.high, c.low, c.close))


class TestSynthesizerEdges:

    def test_empty_input(self):
        assert synthesize([], bucket_minutes=60) == []

    def test_bad_prices_are_skipped(self):
        points = [
            [T0_MS, 10.0],
            [T0_MS + 1000, float("nan")],
            [T0_MS + 2000, -5.0],
            [T0_MS + 3000, 0.0],
            [T0_MS + 4000, None],
            [T0_MS + 5000, 12.0],
        ]
        (c,) = synthesize(points, bucket_minutes=60)
        assert (c.open, c.high, c.low, c.close) == (10.0, 12.0, 10.0, 12.0)

    def test_only_bad_prices_yields_nothing(self):
        assert synthesize([[T0_MS, 0.0], [T0_MS + 1, float("inf")]], bucket_minutes=5) == []

    def test_close_is_last_processed_not_latest(self):
        points = [[T0_MS + 2000, 5.0], [T0_MS + 1000, 7.0]]
        (c,) = synthesize(points, bucket_minutes=60)
        assert c.open == 5.0
        assert c.close == 7.0

    def test_zero_width_rejected(self):
        with pytest.raises(ValueError):
            synthesize([[T0_MS, 1.0]], bucket_minutes=0)

    def test_fifty_five_minute_ticks_make_hourly_candles(self):
        points = [[T0_MS + i * 5 * 60_000, 100.0 + i] for i in range(50)]
        candles = synthesize(points, bucket_minutes=60)
        assert len(candles) == 5
        assert candles[0].open == 100.0
        assert candles[0].close == 111.0
        assert candles[-1].close == 149.0


class TestVolumeDistribution:
    """Volume samples are spread evenly over the price points they cover."""

    def test_matching_spacing_sums_per_bucket(self):
        points  = [[T0_MS + i * 60_000, 1.0] for i in range(10)]
        volumes = [[T0_MS + i * 60_000, 2.0] for i in range(10)]
        candles = synthesize(points, bucket_minutes=5, volumes=volumes)
        assert [c.volume for c in candles] == [10.0, 10.0]

    def test_coarse_volume_spread_over_fine_points(self):
        # six price points, one volume sample per three points
        points  = [[T0_MS + i * 60_000, 1.0] for i in range(6)]
        volumes = [[T0_MS + 2 * 60_000, 30.0], [T0_MS + 5 * 60_000, 60.0]]
        candles = synthesize(points, bucket_minutes=1, volumes=volumes)
        assert [c.volume for c in candles] == [10.0, 10.0, 10.0, 20.0, 20.0, 20.0]

    @given(
        n=st.integers(min_value=1, max_value=100),
        vol=st.floats(min_value=0, max_value=1e9, allow_nan=False, allow_infinity=False),
    )
    @settings(max_examples=100)
    def test_total_volume_is_preserved(self, n, vol):
        points  = [[T0_MS + i * 60_000, 1.0] for i in range(n)]
        volumes = [[T0_MS + i * 60_000, vol] for i in range(0, n, 3)]
        candles = synthesize(points, bucket_minutes=15, volumes=volumes)
        assert math.isclose(sum(c.volume for c in candles), vol * len(volumes), rel_tol=1e-9, abs_tol=1e-6)

    def test_no_volume_series_means_zero_volume(self):
        (c,) = synthesize([[T0_MS, 1.0]], bucket_minutes=5)
        assert c.volume == 0.0


class TestResample:

    def test_widens_daily_into_weekly(self):
        day = 86_400
        week_start = (T0_MS // 1000 // (7 * day)) * 7 * day
        daily = [
            Candle(time=week_start + i * day, open=10 + i, high=20 + i, low=5 + i, close=11 + i, volume=1)
            for i in range(14)
        ]
        weekly = resample_candles(daily, 7 * 24 * 60)
        assert len(weekly) == 2
        first = weekly[0]
        assert first.time == week_start
        assert first.open == 10
        assert first.close == 17
        assert first.high == 26
        assert first.low == 5
        assert first.volume == 7

    def test_empty(self):
        assert resample_candles([], 30) == []
