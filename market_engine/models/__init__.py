"""Canonical engine models."""

from market_engine.models.candles import Candle, normalize_series, to_float
from market_engine.models.payloads import (
    ASSET_CONTRACT,
    ASSET_CRYPTO,
    ASSET_STOCK,
    AssetClassification,
    ChartResult,
    HeatmapResult,
    HeatmapStats,
    MoverItem,
    ProviderAttempt,
    QuoteResult,
    ScreenFilters,
    SearchHit,
    SearchResult,
    movers_from_dicts,
)

__all__ = [
    "ASSET_CONTRACT",
    "ASSET_CRYPTO",
    "ASSET_STOCK",
    "AssetClassification",
    "Candle",
    "ChartResult",
    "HeatmapResult",
    "HeatmapStats",
    "MoverItem",
    "ProviderAttempt",
    "QuoteResult",
    "ScreenFilters",
    "SearchHit",
    "SearchResult",
    "movers_from_dicts",
    "normalize_series",
    "to_float",
]
