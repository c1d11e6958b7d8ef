"""
Market Brain — Engine Configuration
────────────────────────────────────
Every knob the engine reads from the environment (or a .env file).

Environment variables:
  ALPHA_VANTAGE_API_KEY   stock series, quotes, movers, search
  COINGECKO_API_KEY       optional; switches CoinGecko to the pro host
  COINGECKO_BASE_URL      override the CoinGecko host
  PROVIDER_TIMEOUT_S      time box for ONE provider attempt (default 10)
  CHAIN_MAX_LENGTH        max providers tried per chart request (default 4)
  MAX_CANDLES             candles retained per series (default 200)
  HEATMAP_LIMIT           max heatmap tiles (default 50)
  SCREENER_LIMIT          max screener rows (default 100)
  HEATMAP_DEX_NETWORKS    comma list of GeckoTerminal networks (default bsc,eth,solana,base)
  REDIS_URL               optional shared cache mirror

There is no overall request deadline: a chart request that walks the whole
chain can take up to PROVIDER_TIMEOUT_S * CHAIN_MAX_LENGTH.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from market_engine.cache.ttl_config import TTL

load_dotenv()

COINGECKO_FREE_URL = "https://api.coingecko.com/api/v3"
COINGECKO_PRO_URL  = "https://pro-api.coingecko.com/api/v3"


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class EngineConfig:
    alpha_vantage_key:    str   = ""
    coingecko_key:        str   = ""
    coingecko_base_url:   str   = COINGECKO_FREE_URL
    provider_timeout_s:   float = 10.0
    chain_max_length:     int   = 4
    max_candles:          int   = 200
    heatmap_limit:        int   = 50
    screener_limit:       int   = 100
    heatmap_dex_networks: Tuple[str, ...] = ("bsc", "eth", "solana", "base")
    redis_url:            Optional[str] = None
    ttl:                  Dict[str, int] = field(default_factory=lambda: dict(TTL))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        cg_key = os.environ.get("COINGECKO_API_KEY", "")
        ttl = {
            name: _env_int(f"TTL_{name.upper()}", seconds)
            for name, seconds in TTL.items()
        }
        return cls(
            alpha_vantage_key    = os.environ.get("ALPHA_VANTAGE_API_KEY", ""),
            coingecko_key        = cg_key,
            coingecko_base_url   = os.environ.get(
                "COINGECKO_BASE_URL", COINGECKO_PRO_URL if cg_key else COINGECKO_FREE_URL
            ),
            provider_timeout_s   = _env_float("PROVIDER_TIMEOUT_S", 10.0),
            chain_max_length     = _env_int("CHAIN_MAX_LENGTH", 4),
            max_candles          = _env_int("MAX_CANDLES", 200),
            heatmap_limit        = _env_int("HEATMAP_LIMIT", 50),
            screener_limit       = _env_int("SCREENER_LIMIT", 100),
            heatmap_dex_networks = _env_list("HEATMAP_DEX_NETWORKS", "bsc,eth,solana,base"),
            redis_url            = os.environ.get("REDIS_URL") or None,
            ttl                  = ttl,
        )

    def ttl_for(self, name: str) -> int:
        return self.ttl.get(name, TTL.get(name, 60))
