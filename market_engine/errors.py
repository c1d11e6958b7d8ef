"""
Market Brain — Engine Errors
─────────────────────────────
One typed error per failure the caller can act on.

  InvalidSymbol        400   malformed / empty / over-length input
  InvalidInterval      400   interval not in the interval table
  InvalidRequest       400   unknown heatmap kind, screener class or sort key
  NotFound             404   symbol or contract unresolvable
  RateLimited          429   upstream signalled throttling (never retried here)
  UpstreamUnavailable  503   network / timeout / parse failure from one provider
  AllProvidersFailed   503   fallback chain exhausted

Provider adapters raise the ProviderError family. The chart orchestrator
catches them per attempt and only lets one escape when the chain is done.
"""

from typing import List, Optional


class MarketDataError(Exception):
    status = 500
    kind   = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidSymbol(MarketDataError):
    status = 400
    kind   = "invalid_symbol"


class InvalidInterval(MarketDataError):
    status = 400
    kind   = "invalid_interval"


# ── Provider-level failures ────────────────────────────────────
class ProviderError(MarketDataError):
    status = 503
    kind   = "provider_error"

    def __init__(self, provider_id: str, message: str = ""):
        super().__init__(message)
        self.provider_id = provider_id

    def __str__(self) -> str:
        return f"{self.provider_id}: {self.message}"

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["provider"] = self.provider_id
        return d


class NotFound(ProviderError):
    status = 404
    kind   = "not_found"


class RateLimited(ProviderError):
    status = 429
    kind   = "rate_limited"


class UpstreamUnavailable(ProviderError):
    status = 503
    kind   = "upstream_unavailable"


class AllProvidersFailed(MarketDataError):
    status = 503
    kind   = "all_providers_failed"

    def __init__(self, symbol: str, attempts: Optional[List] = None):
        attempts = list(attempts or [])
        tried = ", ".join(f"{a.provider_id}={a.error_kind}" for a in attempts) or "none"
        super().__init__(f"No provider returned data for {symbol} ({tried})")
        self.symbol   = symbol
        self.attempts = attempts

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["attempts"] = [a.to_dict() for a in self.attempts]
        return d


class InvalidRequest(MarketDataError):
    status = 400
    kind   = "invalid_request"
