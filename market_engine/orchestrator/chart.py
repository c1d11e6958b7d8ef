"""
Market Brain — Chart Orchestrator
──────────────────────────────────
One chart request:

  TryCache → hit: done
           → miss: provider[0] → provider[1] → … → exhausted

Providers are tried strictly one after another, each inside its own
time box. Every failure becomes a ProviderAttempt and a log line; only
the end of the chain decides what the caller sees:

  single-provider chain, NotFound / RateLimited  → re-raised as is
  last provider RateLimited                      → re-raised as is
  every provider NotFound                        → NotFound
  anything else                                  → AllProvidersFailed(attempts)

A provider that answers with zero candles counts as NotFound.
A successful result lands in the cache before it is returned.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from market_engine.cache import TTLCache
from market_engine.errors import (
    AllProvidersFailed, NotFound, ProviderError, RateLimited, UpstreamUnavailable,
)
from market_engine.intervals import IntervalSpec
from market_engine.models import AssetClassification, ChartResult, ProviderAttempt
from market_engine.orchestrator.chain import Strategy, plan
from market_engine.providers.base import CandleProvider

log = logging.getLogger("mb.engine.chart")


def chart_cache_key(asset: AssetClassification, spec: IntervalSpec) -> str:
    return f"{asset.symbol}|{asset.network or ''}|{spec.name}"


class ChartOrchestrator:

    def __init__(
        self,
        providers: Dict[str, CandleProvider],
        caches: Dict[str, TTLCache],
        timeout_s: float = 10.0,
        chain_max_length: int = 4,
        max_candles: int = 200,
        strategies: Optional[List[Strategy]] = None,
    ):
        self.providers        = providers
        self.strategies       = strategies
        self.caches           = caches
        self.timeout_s        = timeout_s
        self.chain_max_length = chain_max_length
        self.max_candles      = max_candles

    def plan(self, asset: AssetClassification, spec: IntervalSpec) -> List[str]:
        return plan(asset, spec, self.chain_max_length, self.strategies)

    async def get_chart(self, asset: AssetClassification, spec: IntervalSpec,
                        cache_name: str = "candles") -> ChartResult:
        cache = self.caches[cache_name]
        return await cache.get_or_fetch(
            chart_cache_key(asset, spec), lambda: self.run_chain(asset, spec),
        )

    async def _attempt(self, provider_id: str, asset: AssetClassification, spec: IntervalSpec):
        provider = self.providers.get(provider_id)
        if provider is None:
            raise UpstreamUnavailable(provider_id, "provider not configured")
        try:
            series = await asyncio.wait_for(
                provider.fetch_series(asset, spec, self.max_candles), timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            raise UpstreamUnavailable(provider_id, f"timed out after {self.timeout_s:.0f}s")
        if not series.candles:
            raise NotFound(provider_id, "no candles")
        return series

    async def run_chain(self, asset: AssetClassification, spec: IntervalSpec) -> ChartResult:
        order    = self.plan(asset, spec)
        attempts: List[ProviderAttempt] = []
        last_error: Optional[ProviderError] = None

        for provider_id in order:
            started = time.time()
            t0      = time.monotonic()
            try:
                series = await self._attempt(provider_id, asset, spec)
            except ProviderError as e:
                last_error = e
            except Exception as e:
                # adapter bug or an unexpected payload shape
                log.exception(f"[{provider_id}] unexpected error for {asset.symbol}")
                last_error = UpstreamUnavailable(provider_id, f"{e.__class__.__name__}: {e}")
            else:
                attempts.append(ProviderAttempt(
                    provider_id=provider_id, started_at=started, outcome="success",
                    elapsed_s=time.monotonic() - t0,
                ))
                log.info(f"{asset.symbol} {spec.name} ← {provider_id} "
                         f"({len(series.candles)} candles, {len(attempts)} attempt(s))")
                return ChartResult(
                    symbol=asset.symbol,
                    interval=spec.name,
                    source=provider_id,
                    candles=tuple(series.candles),
                    network=series.network,
                    contract_address=series.contract_address,
                    attempts=tuple(attempts),
                )

            attempts.append(ProviderAttempt(
                provider_id=provider_id, started_at=started, outcome="error",
                error_kind=last_error.kind, detail=last_error.message,
                elapsed_s=time.monotonic() - t0,
            ))
            log.warning(f"{asset.symbol} {spec.name} ✗ {provider_id}: "
                        f"{last_error.kind}: {last_error.message}")

        raise self._exhausted(asset, order, attempts, last_error)

    @staticmethod
    def _exhausted(asset: AssetClassification, order: List[str],
                   attempts: List[ProviderAttempt], last_error: Optional[ProviderError]):
        if last_error is None:
            return AllProvidersFailed(asset.symbol, attempts)
        if len(order) == 1 and isinstance(last_error, (NotFound, RateLimited)):
            return last_error
        if isinstance(last_error, RateLimited):
            return last_error
        if all(a.error_kind == NotFound.kind for a in attempts):
            return NotFound(last_error.provider_id, f"{asset.symbol} not found on any provider")
        return AllProvidersFailed(asset.symbol, attempts)
