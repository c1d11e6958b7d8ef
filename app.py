import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from market_engine import EngineConfig, MarketDataEngine, MarketDataError, ScreenFilters
from market_engine.errors import RateLimited

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
log = logging.getLogger("mb.api")

RETRY_AFTER_S = 60


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = getattr(app.state, "engine", None)
    if engine is None:
        engine = MarketDataEngine(EngineConfig.from_env())
        app.state.engine = engine
    await engine.connect_redis()
    log.info("Market data engine ready")
    yield
    await engine.aclose()
    app.state.engine = None


app = FastAPI(
    title="Market Data API",
    description="Charts, quotes, heatmaps, screener and search across Alpha Vantage, "
                "CoinGecko, Binance and GeckoTerminal.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> MarketDataEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(503, "Engine not started")
    return engine


async def run(request: Request, op: str, call):
    """Await an engine call; typed engine errors become HTTP errors with their status."""
    try:
        return await call(get_engine(request))
    except MarketDataError as e:
        log.warning(f"{op} failed: {e.kind}: {e}")
        headers = {"Retry-After": str(RETRY_AFTER_S)} if isinstance(e, RateLimited) else None
        raise HTTPException(e.status, e.to_dict(), headers=headers)


@app.get("/")
async def root():
    return {"status": "ok", "docs": "/docs", "api": "/api/chart/AAPL/1D"}


@app.get("/health")
async def health(request: Request):
    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "healthy" if engine else "starting",
        "redis": "connected" if engine and engine.redis else "unavailable (using memory cache)",
        "timestamp": int(time.time()),
    }


@app.get("/api/chart/{symbol}/{interval}", tags=["Charts"])
async def get_chart(request: Request, symbol: str, interval: str):
    chart = await run(request, f"chart {symbol}/{interval}",
                      lambda e: e.get_chart(symbol, interval))
    body = chart.to_dict()
    body["timestamp"] = int(time.time())
    return body


@app.get("/api/quote/{symbol}", tags=["Quotes"])
async def get_quote(request: Request, symbol: str):
    quote = await run(request, f"quote {symbol}", lambda e: e.get_quote(symbol))
    body = quote.to_dict()
    body["timestamp"] = int(time.time())
    return body


@app.get("/api/overview/{symbol}", tags=["Quotes"])
async def get_overview(request: Request, symbol: str):
    return await run(request, f"overview {symbol}", lambda e: e.get_overview(symbol))


@app.get("/api/heatmap/{kind}", tags=["Movers"])
async def get_heatmap(
    request: Request,
    kind: str,
    limit: Optional[int] = Query(None, ge=1, le=250),
    sort: str = Query("change", description="change | change_desc | change_asc | volume | market_cap"),
    networks: Optional[str] = Query(None, description="Comma-separated GeckoTerminal networks e.g. bsc,eth"),
):
    params = {"limit": limit, "sort": sort}
    if networks:
        params["networks"] = [n.strip().lower() for n in networks.split(",") if n.strip()]
    heatmap = await run(request, f"heatmap {kind}", lambda e: e.get_heatmap(kind, params))
    body = heatmap.to_dict()
    body["timestamp"] = int(time.time())
    return body


@app.get("/api/screener/{asset_class}", tags=["Movers"])
async def get_screener(
    request: Request,
    asset_class: str,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    min_volume: Optional[float] = Query(None, ge=0),
    min_market_cap: Optional[float] = Query(None, ge=0),
    max_market_cap: Optional[float] = Query(None, ge=0),
    change: str = Query("all", description="all | gainers | losers"),
    sort_by: str = Query("volume", description="change | change_desc | change_asc | volume | market_cap"),
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    filters = ScreenFilters(
        min_price=min_price, max_price=max_price, min_volume=min_volume,
        min_market_cap=min_market_cap, max_market_cap=max_market_cap,
        change=change, sort_by=sort_by, limit=limit,
    )
    items = await run(request, f"screener {asset_class}", lambda e: e.screen(asset_class, filters))
    return {
        "asset_class": asset_class,
        "count": len(items),
        "results": [i.to_dict() for i in items],
        "timestamp": int(time.time()),
    }


@app.get("/api/search", tags=["Search"])
async def search(
    request: Request,
    q: str = Query(..., min_length=1, description="Ticker, coin name or contract address"),
    network: Optional[str] = Query(None, description="Restrict DEX results to one network"),
):
    result = await run(request, f"search {q}", lambda e: e.search(q, network))
    return result.to_dict()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False, log_level="info")
