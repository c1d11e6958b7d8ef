"""
Market Brain — TTL Cache
─────────────────────────
Per-key short-lived memoisation for engine payloads.

  get(key)                 → payload | None
  set(key, payload)        → replaces the entry wholesale
  get_or_fetch(key, fetch) → cached payload, or ONE shared upstream fetch

Expiry happens on read; there is no other eviction. Stale entries are
simply overwritten by the next successful fetch.

Concurrent misses on the same key are coalesced: the first caller starts
fetch() as its own task and every caller awaits it through a shield, so
one cancelled caller never cancels the others. A failed fetch is
delivered to every waiter and nothing is cached. A fetch may also decline
caching via cacheable(payload).

If a Redis client is supplied the cache mirrors writes with SETEX so
several workers share results. Redis trouble is logged and the memory
cache carries on.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

log = logging.getLogger("mb.engine.cache")


@dataclass(frozen=True)
class CacheEntry:
    key:         str
    payload:     Any
    inserted_at: float
    ttl:         float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


def _encode(payload: Any) -> Any:
    if hasattr(payload, "to_dict"):
        return payload.to_dict()
    if isinstance(payload, (list, tuple)):
        return [_encode(p) for p in payload]
    return payload


def _retrieve(task: asyncio.Future):
    # failures reach waiters via shield; mark them seen when every waiter left
    if not task.cancelled():
        task.exception()


class TTLCache:
    """
    One cache per data type (see ttl_config.TTL). The TTL is fixed for the
    lifetime of the instance.
    """

    def __init__(
        self,
        name: str,
        ttl: float,
        redis=None,
        decode: Optional[Callable[[Any], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name       = name
        self.ttl        = ttl
        self._redis     = redis
        self._decode    = decode
        self._clock     = clock
        self._entries:   Dict[str, CacheEntry]     = {}
        self._in_flight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def attach_redis(self, redis, decode: Callable[[Any], Any]):
        self._redis  = redis
        self._decode = decode

    def _redis_key(self, key: str) -> str:
        return f"mb:{self.name}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is not None:
            if not entry.is_expired(self._clock()):
                log.debug(f"[{self.name}] hit {key}")
                return entry.payload
            del self._entries[key]

        if self._redis is None or self._decode is None:
            return None
        try:
            raw = await self._redis.get(self._redis_key(key))
        except Exception as e:
            log.warning(f"[{self.name}] redis get failed ({e}): memory only")
            return None
        if not raw:
            return None
        try:
            payload = self._decode(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            log.warning(f"[{self.name}] undecodable redis entry for {key}: {e}")
            return None
        log.debug(f"[{self.name}] redis hit {key}")
        return payload

    async def set(self, key: str, payload: Any):
        self._entries[key] = CacheEntry(
            key=key, payload=payload, inserted_at=self._clock(), ttl=self.ttl,
        )
        if self._redis is None:
            return
        try:
            await self._redis.setex(
                self._redis_key(key), max(1, int(self.ttl)), json.dumps(_encode(payload)),
            )
        except Exception as e:
            log.warning(f"[{self.name}] redis set failed ({e}): memory only")

    async def _run(self, key: str, fetch: Callable[[], Awaitable[Any]],
                   cacheable: Optional[Callable[[Any], bool]]) -> Any:
        try:
            payload = await fetch()
            if cacheable is None or cacheable(payload):
                await self.set(key, payload)
            else:
                log.info(f"[{self.name}] not caching {key}")
            return payload
        finally:
            self._in_flight.pop(key, None)

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        cacheable: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        cached = await self.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fetch, cacheable))
            task.add_done_callback(_retrieve)
            self._in_flight[key] = task
        else:
            log.debug(f"[{self.name}] joining in-flight fetch for {key}")
        # a cancelled caller stops waiting; the fetch runs on for the rest
        return await asyncio.shield(task)

    def clear(self):
        self._entries.clear()
