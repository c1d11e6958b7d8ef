from market_engine.orchestrator.chain import STRATEGIES, Strategy, plan
from market_engine.orchestrator.chart import ChartOrchestrator, chart_cache_key
from market_engine.orchestrator.movers import (
    MoversAggregator, gather_sources, heatmap_stats, merge_movers, merge_search, sort_movers,
)

__all__ = [
    "ChartOrchestrator",
    "MoversAggregator",
    "STRATEGIES",
    "Strategy",
    "chart_cache_key",
    "gather_sources",
    "heatmap_stats",
    "merge_movers",
    "merge_search",
    "plan",
    "sort_movers",
]
