"""
Market Brain — Provider Base
─────────────────────────────
Every upstream adapter inherits from one of these.

  CandleProvider  fetch_series(asset, spec)  → Series (candles + venue)
  QuoteSource     fetch_quote(asset)         → QuoteResult
  MoverSource     fetch_movers(params)       → List[MoverItem]
  SearchSource    search(query, network)     → List[SearchHit]

Adapters are stateless per call: they hold the shared httpx client and
static lookup tables, nothing else. Failures are raised as ProviderError
subclasses; the orchestrators decide what to do with them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx

from market_engine.intervals import IntervalSpec
from market_engine.models import (
    AssetClassification, Candle, MoverItem, QuoteResult, SearchHit, normalize_series,
)


class Provider(ABC):
    """Common plumbing: an id and the shared client."""

    provider_id: str = "base"

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0):
        self.client  = client
        self.timeout = timeout


@dataclass(frozen=True)
class Series:
    """Candles plus where they came from, for venues resolved at fetch time."""
    candles:          List[Candle]
    network:          Optional[str] = None
    contract_address: Optional[str] = None


class CandleProvider(Provider):

    max_candles: int = 200

    @abstractmethod
    async def _fetch_raw(self, asset: AssetClassification,
                         spec: IntervalSpec) -> Union[List[Candle], Series]:
        """Subclasses return candles in any order; fetch_series tidies them."""
        ...

    async def fetch_series(self, asset: AssetClassification, spec: IntervalSpec,
                           max_len: Optional[int] = None) -> Series:
        raw = await self._fetch_raw(asset, spec)
        if not isinstance(raw, Series):
            raw = Series(candles=raw, contract_address=asset.contract_address)
        return Series(
            candles=normalize_series(raw.candles, max_len or self.max_candles),
            network=raw.network,
            contract_address=raw.contract_address,
        )

    async def fetch_candles(self, asset: AssetClassification, spec: IntervalSpec,
                            max_len: Optional[int] = None) -> List[Candle]:
        return (await self.fetch_series(asset, spec, max_len)).candles


class QuoteSource(Provider):

    @abstractmethod
    async def fetch_quote(self, asset: AssetClassification) -> QuoteResult:
        ...


class MoverSource(Provider):

    @abstractmethod
    async def fetch_movers(self, params: Optional[dict] = None) -> List[MoverItem]:
        ...


class SearchSource(Provider):

    @abstractmethod
    async def search(self, query: str, network: Optional[str] = None) -> List[SearchHit]:
        ...
