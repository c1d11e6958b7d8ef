"""Tests for movers merging, heatmap stats, the screener and search."""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from market_engine.cache import TTL, TTLCache
from market_engine.errors import InvalidRequest, InvalidSymbol, NotFound
from market_engine.models import MoverItem, ScreenFilters, SearchHit
from market_engine.orchestrator import MoversAggregator
from market_engine.orchestrator.movers import (
    SORT_KEYS, gather_sources, heatmap_stats, merge_movers, merge_search, passes_filters,
)


def mover(symbol, change=0.0, volume=100.0, price=1.0, cap=1e6, source="coingecko"):
    return MoverItem(symbol=symbol, name=symbol, price=price, change_percent=change,
                     volume=volume, market_cap_or_tvl=cap, source=source)


def hit(symbol, source):
    return SearchHit(symbol=symbol, name=symbol, asset_type="crypto", source=source)


class StubSource:
    """Stands in for a MoverSource / SearchSource."""

    def __init__(self, items=None, hits=None, error=None):
        self.items  = items or []
        self.hits   = hits or []
        self.error  = error
        self.params = []

    async def fetch_movers(self, params=None):
        self.params.append(params)
        if self.error:
            raise self.error
        return list(self.items)

    async def search(self, query, network=None):
        if self.error:
            raise self.error
        return list(self.hits)


class StubContract:

    def __init__(self, hit=None, error=None):
        self.hit   = hit
        self.error = error

    async def lookup(self, asset):
        if self.error:
            raise self.error
        return self.hit


def aggregator(movers=None, searchers=None, contract=None, networks=("bsc",)):
    return MoversAggregator(
        movers=movers or {},
        searchers=searchers or {},
        contract_lookup=contract,
        caches={name: TTLCache(name, ttl) for name, ttl in TTL.items()},
        dex_networks=networks,
    )


def run(coro):
    return asyncio.run(coro)


# =============================================================================
# Merge
# =============================================================================


class TestMergeMovers:

    def test_first_source_wins_on_duplicates(self):
        cg  = [mover("BTC", 2.0, source="coingecko"), mover("ETH", 1.0, source="coingecko")]
        dex = [mover("btc", 9.0, source="geckoterminal"), mover("PEPE", 5.0, source="geckoterminal")]
        merged = merge_movers([cg, dex], sort_key="change")

        assert sorted(m.key for m in merged) == ["BTC", "ETH", "PEPE"]
        btc = next(m for m in merged if m.key == "BTC")
        assert btc.source == "coingecko"

    def test_stablecoins_are_dropped(self):
        merged = merge_movers([[mover("USDT"), mover("usdc"), mover("SOL")]])
        assert [m.symbol for m in merged] == ["SOL"]

    @given(changes=st.lists(st.floats(min_value=-99, max_value=500), min_size=1, max_size=40),
           limit=st.integers(min_value=0, max_value=50))
    @settings(max_examples=100)
    def test_unique_keys_and_cap(self, changes, limit):
        items  = [mover(f"T{i % 7}", c) for i, c in enumerate(changes)]
        merged = merge_movers([items], sort_key="change", limit=limit)
        keys   = [m.key for m in merged]
        assert len(keys) == len(set(keys))
        assert len(merged) <= limit

    @pytest.mark.parametrize("sort_key,expected", [
        ("change",      ["C", "A", "B"]),
        ("change_desc", ["A", "B", "C"]),
        ("change_asc",  ["C", "B", "A"]),
        ("volume",      ["B", "C", "A"]),
        ("market_cap",  ["A", "C", "B"]),
    ])
    def test_sort_keys(self, sort_key, expected):
        items = [
            mover("A", change=5.0,   volume=10, cap=300),
            mover("B", change=1.0,   volume=30, cap=100),
            mover("C", change=-20.0, volume=20, cap=200),
        ]
        assert [m.symbol for m in merge_movers([items], sort_key)] == expected

    def test_unknown_sort_key(self):
        with pytest.raises(InvalidRequest):
            merge_movers([[mover("A")]], sort_key="alphabetical")

    def test_every_sort_key_is_covered(self):
        assert set(SORT_KEYS) == {"change", "change_desc", "change_asc", "volume", "market_cap"}


class TestHeatmapStats:

    def test_counts_and_extremes(self):
        stats = heatmap_stats([mover("A", 4.0, volume=1), mover("B", -2.0, volume=2), mover("C", 0.0, volume=3)])
        assert (stats.gainers, stats.losers) == (1, 1)
        assert stats.avg_change == pytest.approx(2.0 / 3)
        assert stats.top_gainer.symbol == "A"
        assert stats.top_loser.symbol == "B"
        assert stats.total_volume == 6

    def test_all_down_has_no_top_gainer(self):
        stats = heatmap_stats([mover("A", -1.0), mover("B", -3.0)])
        assert stats.top_gainer is None
        assert stats.top_loser.symbol == "B"

    def test_empty(self):
        stats = heatmap_stats([])
        assert stats.gainers == stats.losers == 0
        assert stats.top_gainer is None and stats.top_loser is None


class TestFilters:

    @pytest.mark.parametrize("filters,passes", [
        (ScreenFilters(), True),
        (ScreenFilters(min_price=2.0), False),
        (ScreenFilters(max_price=0.5), False),
        (ScreenFilters(min_volume=1000), False),
        (ScreenFilters(min_market_cap=5e6), False),
        (ScreenFilters(max_market_cap=5e5), False),
        (ScreenFilters(change="gainers"), True),
        (ScreenFilters(change="losers"), False),
    ])
    def test_passes_filters(self, filters, passes):
        assert passes_filters(mover("X", change=3.0, volume=100, price=1.0, cap=1e6), filters) is passes


class TestGatherSources:

    def test_failing_source_contributes_nothing(self):
        ok  = StubSource(items=[mover("A")])
        bad = StubSource(error=RuntimeError("boom"))
        batches = run(gather_sources([("ok", ok.fetch_movers), ("bad", bad.fetch_movers)]))
        assert [len(b) for b in batches] == [1, 0]


# =============================================================================
# Aggregator
# =============================================================================


class TestHeatmap:

    def test_crypto_union_of_coingecko_and_dex(self):
        cg = StubSource(items=[mover("BTC", 2.0, source="coingecko"), mover("ETH", 1.0, source="coingecko")])
        gt = StubSource(items=[mover("BTC", 7.0, source="geckoterminal"),
                               mover("PEPE", 30.0, source="geckoterminal")])
        agg = aggregator(movers={"coingecko": cg, "geckoterminal": gt})

        result = run(agg.heatmap("crypto"))

        assert len(result.items) == 3
        assert {m.key: m.source for m in result.items}["BTC"] == "coingecko"
        assert result.stats.top_gainer.symbol == "PEPE"
        assert cg.params == [{"limit": 100}]
        assert gt.params == [{"network": "bsc"}]

    def test_one_source_down_still_answers(self):
        cg = StubSource(error=RuntimeError("coingecko down"))
        gt = StubSource(items=[mover("PEPE", 3.0, source="geckoterminal")])
        result = run(aggregator(movers={"coingecko": cg, "geckoterminal": gt}).heatmap("crypto"))
        assert [m.symbol for m in result.items] == ["PEPE"]

    def test_dex_fans_out_per_network(self):
        gt  = StubSource(items=[mover("WIF", 1.0, source="geckoterminal")])
        agg = aggregator(movers={"geckoterminal": gt}, networks=("bsc", "solana"))
        run(agg.heatmap("dex"))
        assert gt.params == [{"network": "bsc"}, {"network": "solana"}]

    def test_heatmap_is_cached(self):
        cg  = StubSource(items=[mover("BTC")])
        agg = aggregator(movers={"coingecko": cg})

        async def twice():
            await agg.heatmap("crypto")
            await agg.heatmap("crypto")

        run(twice())
        assert len(cg.params) == 1

    def test_outage_result_is_not_cached(self):
        cg  = StubSource(error=RuntimeError("coingecko down"))
        gt  = StubSource(error=RuntimeError("geckoterminal down"))
        agg = aggregator(movers={"coingecko": cg, "geckoterminal": gt})

        async def outage_then_recovery():
            empty = await agg.heatmap("crypto")
            cg.error, cg.items = None, [mover("BTC", 2.0)]
            return empty, await agg.heatmap("crypto")

        empty, recovered = run(outage_then_recovery())
        assert empty.items == ()
        assert [m.symbol for m in recovered.items] == ["BTC"]
        assert len(cg.params) == 2

    @pytest.mark.parametrize("kind,params", [
        ("bonds", None),
        ("crypto", {"sort": "name"}),
    ])
    def test_invalid_requests(self, kind, params):
        with pytest.raises(InvalidRequest):
            run(aggregator().heatmap(kind, params))


class TestScreener:

    def test_filters_sort_and_limit(self):
        av = StubSource(items=[
            mover("AAPL", 2.0, volume=500, price=190, source="alphavantage"),
            mover("TSLA", -4.0, volume=900, price=250, source="alphavantage"),
            mover("PENY", 8.0, volume=50, price=0.5, source="alphavantage"),
        ])
        agg = aggregator(movers={"alphavantage": av})
        rows = run(agg.screen("stocks", ScreenFilters(min_price=1.0, sort_by="volume")))
        assert [m.symbol for m in rows] == ["TSLA", "AAPL"]

        gainers = run(agg.screen("stock", ScreenFilters(change="gainers", sort_by="change_desc", limit=1)))
        assert [m.symbol for m in gainers] == ["PENY"]

    def test_filtered_to_nothing_is_still_cached(self):
        av  = StubSource(items=[mover("PENY", 8.0, price=0.5, source="alphavantage")])
        agg = aggregator(movers={"alphavantage": av})

        async def twice():
            first = await agg.screen("stocks", ScreenFilters(min_price=1.0))
            await agg.screen("stocks", ScreenFilters(min_price=1.0))
            return first

        assert run(twice()) == ()
        assert len(av.params) == 1

    def test_outage_result_is_not_cached(self):
        av  = StubSource(error=RuntimeError("alphavantage down"))
        agg = aggregator(movers={"alphavantage": av})

        async def twice():
            await agg.screen("stocks")
            await agg.screen("stocks")

        run(twice())
        assert len(av.params) == 2

    @pytest.mark.parametrize("asset_class,filters", [
        ("forex", ScreenFilters()),
        ("crypto", ScreenFilters(sort_by="name")),
        ("crypto", ScreenFilters(change="flat")),
    ])
    def test_invalid(self, asset_class, filters):
        with pytest.raises(InvalidRequest):
            run(aggregator().screen(asset_class, filters))


class TestSearch:

    def test_text_search_merges_crypto_hits(self):
        agg = aggregator(searchers={
            "alphavantage":  StubSource(hits=[SearchHit("PEP", "PepsiCo", "stock", "alphavantage")]),
            "coingecko":     StubSource(hits=[hit("PEPE", "coingecko")]),
            "geckoterminal": StubSource(hits=[hit("PEPE", "geckoterminal"), hit("PEPE2", "geckoterminal")]),
        })
        result = run(agg.search("pep"))
        assert [h.symbol for h in result.stocks] == ["PEP"]
        assert [(h.symbol, h.source) for h in result.crypto] == [
            ("PEPE", "coingecko"), ("PEPE2", "geckoterminal"),
        ]
        assert result.search_type == "text"

    def test_contract_search_uses_lookup(self):
        address = "0x" + "cd" * 20
        found   = SearchHit("CAKE", "PancakeSwap", "crypto", "geckoterminal-contract", network="bsc")
        result  = run(aggregator(contract=StubContract(hit=found)).search(address))
        assert result.search_type == "contract_address"
        assert result.crypto == (found,)

    def test_unknown_contract_is_empty_not_an_error(self):
        address = "0x" + "cd" * 20
        result  = run(aggregator(contract=StubContract(error=NotFound("gt", "x"))).search(address))
        assert result.crypto == ()

    def test_free_text_with_spaces_is_allowed(self):
        av = StubSource(hits=[SearchHit("BRK.B", "Berkshire", "stock", "alphavantage")])
        result = run(aggregator(searchers={"alphavantage": av}).search("berkshire hathaway"))
        assert len(result.stocks) == 1

    def test_empty_query(self):
        with pytest.raises(InvalidSymbol):
            run(aggregator().search("   "))

    def test_merge_search_limit(self):
        cg  = [hit(f"C{i}", "coingecko") for i in range(10)]
        dex = [hit(f"D{i}", "geckoterminal") for i in range(10)]
        assert len(merge_search(cg, dex)) == 15
