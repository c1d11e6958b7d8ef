"""End-to-end engine tests: real adapters, fake upstream."""

import pytest

from market_engine import InvalidInterval, InvalidSymbol, MarketDataEngine, NotFound
from market_engine.models import ScreenFilters

from tests.conftest import (
    AV_HOST, CG_HOST, GT_HOST, FakeRedis, engine_config, gt_ohlcv, gt_pool, price_ticks, run,
)

ADDRESS = "0x" + "ab" * 20


async def _with(engine: MarketDataEngine, op):
    async with engine:
        return await op(engine)


# =============================================================================
# Charts
# =============================================================================


class TestCharts:

    def test_repeat_request_hits_upstream_once(self, upstream, make_engine):
        upstream.add(CG_HOST, "/api/v3/coins/bitcoin/market_chart",
                     {"prices": price_ticks(50), "total_volumes": price_ticks(50)})

        async def twice(engine):
            first  = await engine.get_chart("BTC-USD", "1h")
            second = await engine.get_chart("btc-usd", "60m")
            return first, second

        first, second = run(_with(make_engine(), twice))
        assert first == second
        assert first.source == "coingecko"
        assert len(upstream.calls) == 1

    def test_coingecko_rate_limit_falls_back_to_geckoterminal(self, upstream, make_engine):
        upstream.status(CG_HOST, "/api/v3/coins/", 429)
        upstream.add(GT_HOST, "/api/v2/search/pools", {"data": [
            gt_pool("bsc", "0xpool", "WOOF / WBNB", "0xwoof", tvl=80_000),
        ]})
        upstream.add(GT_HOST, "/api/v2/networks/bsc/pools/0xpool/ohlcv/hour", gt_ohlcv(24))

        chart = run(_with(make_engine(), lambda e: e.get_chart("WOOF-USD", "1h")))

        assert chart.source == "geckoterminal"
        assert chart.network == "bsc"
        assert len(chart.candles) == 24
        assert [a.provider_id for a in chart.attempts] == ["coingecko", "geckoterminal"]
        assert chart.to_dict()["network"] == "bsc"

    def test_contract_chart_names_its_network(self, upstream, make_engine):
        upstream.add(GT_HOST, f"/api/v2/networks/base/tokens/{ADDRESS}/pools", {"data": [
            gt_pool("base", "0xpool", "TOKEN / WETH", ADDRESS),
        ]})
        upstream.add(GT_HOST, "/api/v2/networks/base/pools/0xpool/ohlcv/day", gt_ohlcv(10, step_s=86_400))

        chart = run(_with(make_engine(), lambda e: e.get_chart(ADDRESS, "1D")))

        assert chart.source == "geckoterminal-contract"
        assert chart.network == "base"
        assert chart.contract_address == ADDRESS

    def test_live_is_one_minute(self, upstream, make_engine):
        upstream.add(CG_HOST, "/api/v3/coins/ethereum/market_chart",
                     {"prices": price_ticks(30, step_min=1)})
        chart = run(_with(make_engine(), lambda e: e.get_chart("ETH-USD", "LIVE")))
        assert chart.interval == "1m"
        assert len(chart.candles) == 30

    def test_unknown_stock_is_not_found(self, upstream, make_engine):
        upstream.add(AV_HOST, "/query", {"Error Message": "Invalid API call."})
        with pytest.raises(NotFound):
            run(_with(make_engine(), lambda e: e.get_chart("ZZZZQ", "1D")))

    @pytest.mark.parametrize("symbol,interval,error", [
        ("", "1h", InvalidSymbol),
        ("BTC USD", "1h", InvalidSymbol),
        ("BTC-USD", "2h", InvalidInterval),
    ])
    def test_bad_input_never_reaches_upstream(self, upstream, make_engine, symbol, interval, error):
        with pytest.raises(error):
            run(_with(make_engine(), lambda e: e.get_chart(symbol, interval)))
        assert upstream.calls == []


# =============================================================================
# Quotes, overview, lists
# =============================================================================


class TestOtherOperations:

    def test_stock_and_crypto_quotes(self, upstream, make_engine):
        upstream.add(AV_HOST, "/query", {"Global Quote": {
            "01. symbol": "AAPL", "05. price": "190.00", "09. change": "1.00",
            "10. change percent": "0.53%", "06. volume": "100", "08. previous close": "189.00",
        }})
        upstream.add(CG_HOST, "/api/v3/simple/price", {"solana": {"usd": 150.0, "usd_24h_change": 0}})

        async def both(engine):
            return await engine.get_quote("aapl"), await engine.get_quote("SOL")

        stock, crypto = run(_with(make_engine(), both))
        assert (stock.symbol, stock.source) == ("AAPL", "alphavantage")
        assert (crypto.price, crypto.source) == (150.0, "coingecko")

    def test_overview_is_stocks_only_and_cached(self, upstream, make_engine):
        upstream.add(AV_HOST, "/query", {"Symbol": "AAPL", "Name": "Apple Inc", "Sector": "TECHNOLOGY"})

        async def twice(engine):
            await engine.get_overview("AAPL")
            return await engine.get_overview("AAPL")

        overview = run(_with(make_engine(), twice))
        assert overview["Name"] == "Apple Inc"
        assert len(upstream.calls) == 1

        with pytest.raises(InvalidSymbol):
            run(_with(make_engine(), lambda e: e.get_overview("BTC-USD")))

    def test_crypto_heatmap_unions_sources(self, upstream, make_engine):
        upstream.add(CG_HOST, "/api/v3/coins/markets", [
            {"symbol": "btc", "name": "Bitcoin", "current_price": 40000, "price_change_percentage_24h": 2,
             "total_volume": 1e10, "market_cap": 8e11},
            {"symbol": "usdt", "name": "Tether", "current_price": 1, "price_change_percentage_24h": 0,
             "total_volume": 5e10, "market_cap": 9e10},
        ])
        upstream.add(GT_HOST, "/api/v2/networks/bsc/trending_pools", {"data": [
            gt_pool("bsc", "p1", "BTC / WBNB", "btcb", tvl=50_000, change=9.0),
            gt_pool("bsc", "p2", "CAKE / WBNB", "cake", tvl=50_000, change=-6.0),
        ]})
        engine = make_engine(heatmap_dex_networks=("bsc",))

        heatmap = run(_with(engine, lambda e: e.get_heatmap("crypto")))

        assert sorted(m.symbol for m in heatmap.items) == ["BTC", "CAKE"]
        assert {m.symbol: m.source for m in heatmap.items}["BTC"] == "coingecko"
        assert heatmap.stats.top_loser.symbol == "CAKE"

    def test_screen_returns_a_list(self, upstream, make_engine):
        upstream.add(AV_HOST, "/query", {"top_gainers": [
            {"ticker": "NVDA", "price": "500", "change_percentage": "4.5%", "volume": "1000"},
        ], "top_losers": [], "most_actively_traded": []})
        rows = run(_with(make_engine(), lambda e: e.screen("stocks", ScreenFilters(min_price=100))))
        assert [m.symbol for m in rows] == ["NVDA"]

    def test_search_survives_one_dead_source(self, upstream, make_engine):
        upstream.status(AV_HOST, "/query", 503)
        upstream.add(CG_HOST, "/api/v3/search", {"coins": [{"symbol": "doge", "name": "Dogecoin"}]})
        upstream.add(GT_HOST, "/api/v2/search/pools", {"data": []})
        result = run(_with(make_engine(), lambda e: e.search("doge")))
        assert result.stocks == ()
        assert [h.symbol for h in result.crypto] == ["DOGE"]


# =============================================================================
# Redis mirror
# =============================================================================


def test_injected_redis_is_shared_between_engines(upstream):
    upstream.add(CG_HOST, "/api/v3/coins/bitcoin/market_chart", {"prices": price_ticks(12)})
    redis = FakeRedis()

    async def scenario():
        first  = MarketDataEngine(engine_config(), transport=upstream.transport, redis=redis)
        second = MarketDataEngine(engine_config(), transport=upstream.transport, redis=redis)
        a = await first.get_chart("BTC-USD", "1h")
        b = await second.get_chart("BTC-USD", "1h")
        await first.client.aclose()
        await second.client.aclose()
        return a, b

    a, b = run(scenario())
    assert a.candles == b.candles
    assert b.source == "coingecko"
    assert len(upstream.calls) == 1
    assert any(k.startswith("mb:candles:") for k in redis.store)
