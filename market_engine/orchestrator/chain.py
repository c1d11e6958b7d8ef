"""
Market Brain — Provider Chain
──────────────────────────────
Which chart providers to try, in which order. Ordering is data: each row
says which requests it applies to; plan() keeps the matching rows in
table order, drops repeats, and caps the length.

  class     intraday  hint   order
  stock     any       -      alphavantage
  crypto    yes       no     coingecko, geckoterminal, binance
  crypto    no        no     coingecko, geckoterminal, alphavantage-digital
  crypto    any       yes    geckoterminal first, then the default order
  contract  any       -      geckoterminal-contract
"""

from dataclasses import dataclass
from typing import List, Optional

from market_engine.intervals import IntervalSpec
from market_engine.models import ASSET_CONTRACT, ASSET_CRYPTO, ASSET_STOCK, AssetClassification


@dataclass(frozen=True)
class Strategy:
    provider_id:  str
    asset_class:  str
    intraday:     Optional[bool] = None   # None = any interval class
    network_hint: Optional[bool] = None   # None = with or without SYMBOL:network

    def applies(self, asset_class: str, intraday: bool, network_hint: bool) -> bool:
        if self.asset_class != asset_class:
            return False
        if self.intraday is not None and self.intraday != intraday:
            return False
        if self.network_hint is not None and self.network_hint != network_hint:
            return False
        return True


STRATEGIES = [
    # The user named a venue: try the DEX pool there first
    Strategy("geckoterminal",          ASSET_CRYPTO, network_hint=True),

    Strategy("alphavantage",           ASSET_STOCK),

    Strategy("coingecko",              ASSET_CRYPTO),
    Strategy("geckoterminal",          ASSET_CRYPTO),
    Strategy("binance",                ASSET_CRYPTO, intraday=True),
    Strategy("alphavantage-digital",   ASSET_CRYPTO, intraday=False),

    Strategy("geckoterminal-contract", ASSET_CONTRACT),
]


def plan(asset: AssetClassification, spec: IntervalSpec, max_len: int = 4,
         strategies: List[Strategy] = None) -> List[str]:
    rows = STRATEGIES if strategies is None else strategies
    hint = bool(asset.explicit_network and asset.network)
    order: List[str] = []
    for row in rows:
        if row.applies(asset.asset_class, spec.intraday, hint) and row.provider_id not in order:
            order.append(row.provider_id)
    return order[:max(1, max_len)]
