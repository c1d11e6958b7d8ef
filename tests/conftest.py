"""Shared fixtures: a fake upstream router behind httpx.MockTransport."""

import asyncio
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

from market_engine import EngineConfig, MarketDataEngine

# Hour-aligned epoch used by most series fixtures
T0_MS = 1_699_999_200_000


class FakeUpstream:
    """
    Routes requests by (host, path prefix). The longest matching prefix wins.
    Every request is recorded so tests can count upstream calls.
    """

    def __init__(self):
        self.routes: List[Tuple[str, str, Callable[[httpx.Request], httpx.Response]]] = []
        self.calls: List[httpx.Request] = []

    def add(self, host: str, path: str, handler):
        if not callable(handler):
            payload = handler
            handler = lambda request: httpx.Response(200, json=payload)
        self.routes.append((host, path, handler))
        return self

    def status(self, host: str, path: str, code: int, json=None):
        return self.add(host, path, lambda request: httpx.Response(code, json=json or {}))

    def calls_to(self, host: str, path: str = "") -> List[httpx.Request]:
        return [r for r in self.calls if r.url.host == host and r.url.path.startswith(path)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        best = None
        for host, path, handler in self.routes:
            if request.url.host == host and request.url.path.startswith(path):
                if best is None or len(path) > len(best[0]):
                    best = (path, handler)
        if best is None:
            return httpx.Response(404, json={"error": "no route"})
        return best[1](request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache and engine."""

    def __init__(self, broken: bool = False):
        self.store  = {}
        self.ttls   = {}
        self.broken = broken
        self.closed = False

    async def get(self, key):
        if self.broken:
            raise ConnectionError("redis down")
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        if self.broken:
            raise ConnectionError("redis down")
        self.store[key] = value
        self.ttls[key]  = ttl

    async def aclose(self):
        self.closed = True


AV_HOST = "www.alphavantage.co"
CG_HOST = "api.coingecko.com"
BN_HOST = "api.binance.com"
GT_HOST = "api.geckoterminal.com"


def engine_config(**overrides) -> EngineConfig:
    values = dict(
        alpha_vantage_key="test-key",
        provider_timeout_s=5.0,
        redis_url=None,
    )
    values.update(overrides)
    return EngineConfig(**values)


def run(coro):
    return asyncio.run(coro)


def price_ticks(n: int, start_ms: int = T0_MS, step_min: int = 5, base: float = 100.0):
    return [[start_ms + i * step_min * 60_000, base + i] for i in range(n)]


def gt_pool(network: str, pool: str, name: str, token: str, tvl: float = 50_000,
            price: float = 1.0, change: float = 0.0, volume: float = 1000.0) -> dict:
    return {
        "id": f"{network}_{pool}",
        "type": "pool",
        "attributes": {
            "address": pool,
            "name": name,
            "base_token_price_usd": str(price),
            "reserve_in_usd": str(tvl),
            "price_change_percentage": {"h24": str(change)},
            "volume_usd": {"h24": str(volume)},
            "fdv_usd": str(tvl * 10),
        },
        "relationships": {"base_token": {"data": {"id": f"{network}_{token}", "type": "token"}}},
    }


def gt_ohlcv(n: int, start_s: int = T0_MS // 1000, step_s: int = 3600) -> dict:
    rows = [[start_s + i * step_s, 1.0 + i, 2.0 + i, 0.5 + i, 1.5 + i, 10.0] for i in range(n)]
    return {"data": {"attributes": {"ohlcv_list": list(reversed(rows))}}}


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_engine(upstream):
    def factory(**overrides) -> MarketDataEngine:
        return MarketDataEngine(engine_config(**overrides), transport=upstream.transport)
    return factory
