"""
Market Brain — Provider HTTP Helper
────────────────────────────────────
One GET, one answer. Every adapter goes through get_json() so the
status → error mapping lives in exactly one place:

  200 + JSON        → parsed body
  429               → RateLimited        (never retried here)
  404               → NotFound
  timeout / network → UpstreamUnavailable
  5xx / other       → UpstreamUnavailable
  non-JSON body     → UpstreamUnavailable

Retries are the fallback chain's job, not this helper's.
"""

import logging
from typing import Optional, Tuple

import httpx

from market_engine.errors import NotFound, RateLimited, UpstreamUnavailable

log = logging.getLogger("mb.engine.http")

REQUEST_TIMEOUT = 10.0

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; MarketBrain/1.0)",
    "Accept": "application/json",
}


def make_client(transport: Optional[httpx.AsyncBaseTransport] = None,
                timeout: float = REQUEST_TIMEOUT) -> httpx.AsyncClient:
    """Shared client for one engine; every adapter reuses its pool."""
    return httpx.AsyncClient(
        timeout=timeout,
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        headers=DEFAULT_HEADERS,
        transport=transport,
    )


async def get_json(client: httpx.AsyncClient, provider_id: str, url: str,
                   params: dict = None, headers: dict = None,
                   timeout: float = REQUEST_TIMEOUT,
                   not_found_statuses: Tuple[int, ...] = (404,)):
    try:
        r = await client.get(url, params=params, headers=headers, timeout=timeout)
    except httpx.TimeoutException:
        log.warning(f"[{provider_id}] timeout: {url[:80]}")
        raise UpstreamUnavailable(provider_id, "request timed out")
    except httpx.HTTPError as e:
        log.warning(f"[{provider_id}] network error: {e}")
        raise UpstreamUnavailable(provider_id, f"network error: {e.__class__.__name__}")

    if r.status_code == 429:
        raise RateLimited(provider_id, "HTTP 429")
    if r.status_code in not_found_statuses:
        raise NotFound(provider_id, f"HTTP {r.status_code}")
    if r.status_code != 200:
        log.warning(f"[{provider_id}] HTTP {r.status_code} from {url[:80]}")
        raise UpstreamUnavailable(provider_id, f"HTTP {r.status_code}")

    try:
        return r.json()
    except ValueError:
        raise UpstreamUnavailable(provider_id, "response was not JSON")
