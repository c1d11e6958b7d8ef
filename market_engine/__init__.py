"""
Market Brain — Market Data Engine
Multi-source charts, quotes, heatmaps, screener and search.
"""

from market_engine.classifier import classify_symbol
from market_engine.config import EngineConfig
from market_engine.engine import MarketDataEngine
from market_engine.errors import (
    AllProvidersFailed,
    InvalidInterval,
    InvalidRequest,
    InvalidSymbol,
    MarketDataError,
    NotFound,
    ProviderError,
    RateLimited,
    UpstreamUnavailable,
)
from market_engine.intervals import interval_spec
from market_engine.models import (
    Candle,
    ChartResult,
    HeatmapResult,
    MoverItem,
    QuoteResult,
    ScreenFilters,
    SearchResult,
)

__all__ = [
    "AllProvidersFailed",
    "Candle",
    "ChartResult",
    "EngineConfig",
    "HeatmapResult",
    "InvalidInterval",
    "InvalidRequest",
    "InvalidSymbol",
    "MarketDataEngine",
    "MarketDataError",
    "MoverItem",
    "NotFound",
    "ProviderError",
    "QuoteResult",
    "RateLimited",
    "ScreenFilters",
    "SearchResult",
    "UpstreamUnavailable",
    "classify_symbol",
    "interval_spec",
]
