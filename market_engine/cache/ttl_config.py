"""
Market Brain — TTL Configuration
─────────────────────────────────
Single source of truth for all engine cache durations.
Organised by data type: how fast the real world changes.
Each name maps to one TTLCache instance owned by the engine.
"""

# ── Per data-type TTL (seconds) ───────────────────────────────

TTL = {
    # Live: the screen is ticking
    "live":         15,             # 15 seconds (LIVE / 1m charts)
    "quote":        30,             # 30 seconds
    "candles":      60,             # 1 minute  (every other chart interval)

    # Ranked lists: one upstream call feeds many viewers
    "heatmap":      60,             # 1 minute
    "screener":     60,             # 1 minute
    "search":       60,             # 1 minute

    # Slow-changing
    "fundamentals": 3600,           # 1 hour   (Alpha Vantage OVERVIEW)
}

# Which cache a chart interval lands in
LIVE_INTERVALS = {"LIVE", "1m"}


def chart_ttl_name(interval: str) -> str:
    return "live" if interval in LIVE_INTERVALS else "candles"
