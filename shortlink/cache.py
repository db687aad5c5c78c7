"""Redis cache layer for link lookups, click counters, rate limits and sessions.

This module wraps a shared ``redis.asyncio`` client with the key layout used by
the rest of the service. Every Redis failure is re-raised as ``CacheDegraded``
so call sites can decide whether to continue without the cache.

Key Layout
==========
::
    url:{code}          long URL (string), TTL 1h for owned links, 24h for guest links
    clicks:{code}       click counter (INCR), TTL 30 days set on first increment
    rate_limit:{key}    fixed-window request counter
    session:{token}     JSON session payload for an issued JWT

Flow Diagram — Click Counter
============================
::
    ┌─────────────┐
    │ INCR        │
    │ clicks:code │
    └──────┬──────┘
     == 1? │
    ┌──────┴─────┐
    │ YES        │ NO
    ▼            ▼
┌─────────┐  ┌─────────┐
│ EXPIRE  │  │ return  │
│ 30 days │  │ count   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Wrap the shared client**::
    cache = LinkCache(redis_client, settings)

**Step 2 — Read and write mappings**::
    await cache.set_url("abc12345", "https://example.com", ttl=3600)
    long_url = await cache.get_url("abc12345")

**Step 3 — Degrade gracefully**::
    try:
        long_url = await cache.get_url(code)
    except CacheDegraded:
        long_url = None

Key Behaviours
===============
- ``reserve_url`` uses SET NX so two guest creations can never share a code.
- Counters read as 0 when absent (expired or never clicked).
- ``hit_rate_limit`` counts the request before comparing it to the limit.

Classes:
    LinkCache:  Typed facade over the Redis client.
"""

import functools
import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, ParamSpec, TypeVar

import redis.asyncio as redis
from prometheus_client import Counter
from redis.exceptions import RedisError

from shortlink.config import Settings
from shortlink.errors import CacheDegraded

__all__ = ["LinkCache", "url_key", "clicks_key"]

P = ParamSpec("P")
T = TypeVar("T")

REDIS_OPERATIONS_TOTAL = Counter(
    "shortlink_redis_operations_total",
    "Total Redis operations issued by the cache layer",
    ["operation"],
)
REDIS_FAILURES_TOTAL = Counter(
    "shortlink_redis_failures_total",
    "Redis operations that failed and surfaced as CacheDegraded",
    ["operation"],
)


def url_key(code: str) -> str:
    return f"url:{code}"


def clicks_key(code: str) -> str:
    return f"clicks:{code}"


def _degrades(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    operation = func.__name__

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        REDIS_OPERATIONS_TOTAL.labels(operation=operation).inc()
        try:
            return await func(*args, **kwargs)
        except RedisError as exc:
            REDIS_FAILURES_TOTAL.labels(operation=operation).inc()
            raise CacheDegraded(detail=f"{operation}: {exc}") from exc

    return wrapper


class LinkCache:
    """Facade over the shared Redis client with the service's key layout."""

    def __init__(self, client: redis.Redis, settings: Settings):
        self._client = client
        self._settings = settings

    @property
    def client(self) -> redis.Redis:
        return self._client

    # ------------------------------------------------------------------
    # URL mappings
    # ------------------------------------------------------------------

    @_degrades
    async def get_url(self, code: str) -> str | None:
        return await self._client.get(url_key(code))

    @_degrades
    async def set_url(self, code: str, long_url: str, ttl: int | None = None) -> None:
        await self._client.set(url_key(code), long_url, ex=ttl or self._settings.LINK_CACHE_TTL_SECONDS)

    @_degrades
    async def reserve_url(self, code: str, long_url: str, ttl: int) -> bool:
        """Store ``code -> long_url`` only if the code is not cached yet."""
        return bool(await self._client.set(url_key(code), long_url, ex=ttl, nx=True))

    @_degrades
    async def evict(self, code: str) -> None:
        await self._client.delete(url_key(code), clicks_key(code))

    # ------------------------------------------------------------------
    # Click counters
    # ------------------------------------------------------------------

    @_degrades
    async def increment_clicks(self, code: str) -> int:
        key = clicks_key(code)
        count = await self._client.incr(key)
        if count == 1:
            await self._client.expire(key, self._settings.CLICK_COUNTER_TTL_SECONDS)
        return int(count)

    @_degrades
    async def get_clicks(self, code: str) -> int:
        value = await self._client.get(clicks_key(code))
        return int(value) if value else 0

    @_degrades
    async def get_clicks_many(self, codes: Sequence[str]) -> list[int]:
        if not codes:
            return []
        values = await self._client.mget([clicks_key(code) for code in codes])
        return [int(value) if value else 0 for value in values]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    @_degrades
    async def hit_rate_limit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Count one request against ``key``; return whether it is within the limit."""
        current = await self._client.incr(f"rate_limit:{key}")
        if current == 1:
            await self._client.expire(f"rate_limit:{key}", window_seconds)
        return int(current) <= max_requests

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @_degrades
    async def set_session(self, token: str, payload: dict[str, Any], ttl: int) -> None:
        await self._client.set(f"session:{token}", json.dumps(payload), ex=ttl)

    @_degrades
    async def get_session(self, token: str) -> dict[str, Any] | None:
        data = await self._client.get(f"session:{token}")
        return json.loads(data) if data else None

    @_degrades
    async def delete_session(self, token: str) -> None:
        await self._client.delete(f"session:{token}")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False
