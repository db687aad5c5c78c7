"""Resolution service: short code to long URL for redirects.

Flow Diagram — Resolve
======================
::
    ┌─────────────┐
    │ GET /:code  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ code syntax │── malformed ──► NotFound (no I/O)
    │ valid?      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ GET url:code│── degraded ──┐
    └──────┬──────┘              │
    HIT?   │                     │
    ┌──────┴─────┐               │
    │ YES        │ NO            │
    │            ▼               ▼
    │     ┌──────────────────────────┐
    │     │ SELECT active, unexpired │── none ──► NotFound
    │     │ (store down → 503)       │
    │     └────────────┬─────────────┘
    │                  ▼
    │     ┌──────────────────────────┐
    │     │ populate url:code        │
    │     │ (best effort, TTL ≤ exp) │
    │     └────────────┬─────────────┘
    ▼                  ▼
    ┌──────────────────────────────┐
    │ ClickRecorder.record(code)   │ detached, never awaited
    └──────────────┬───────────────┘
                   ▼
             return long URL

Key Behaviours
===============
- The cache is a positive cache: it only ever holds active, unexpired
  mappings at write time, so a hit is trusted without a store round trip.
- A soft-deleted link can still resolve from a stale cache entry until that
  entry is evicted or its TTL runs out.
- With the cache unreachable resolution still works from the store alone.
"""

import logging
import time

from prometheus_client import Counter, Histogram

from shortlink.cache import LinkCache
from shortlink.clicks import ClickRecorder
from shortlink.codegen import is_valid_short_code
from shortlink.config import Settings
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.errors import CacheDegraded, NotFound
from shortlink.repository import LinkRepository
from shortlink.shortening import cache_ttl_for
from shortlink.validation import utcnow

__all__ = ["ResolutionService"]

RESOLUTION_REQUESTS_TOTAL = Counter(
    "shortlink_resolution_requests_total",
    "Total short code resolutions",
    ["status", "cache_hit"],
)
RESOLUTION_DURATION = Histogram(
    "shortlink_resolution_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


class ResolutionService:
    """Resolves short codes with a cache-first, store-fallback strategy."""

    def __init__(
        self,
        repository: LinkRepository,
        cache: LinkCache,
        clicks: ClickRecorder,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._links = repository
        self._cache = cache
        self._clicks = clicks
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx) -> "ResolutionService":
        return cls(LinkRepository(ctx.database), ctx.cache, ctx.clicks, ctx.settings, ctx.logger)

    async def resolve(self, code: str) -> str:
        start_time = time.perf_counter()
        try:
            if not is_valid_short_code(code):
                RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=CacheStatus.MISS).inc()
                raise NotFound("Invalid short code")

            cache_status = CacheStatus.MISS
            try:
                long_url = await self._cache.get_url(code)
            except CacheDegraded as exc:
                self._logger.warning(f"Cache read failed for {code}, using database: {exc.detail}")
                long_url = None
                cache_status = CacheStatus.DEGRADED

            if long_url:
                cache_status = CacheStatus.HIT
                self._logger.debug(f"Cache hit for {code}")
            else:
                long_url = await self._resolve_from_store(code, cache_status)

            RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
            self._clicks.record(code)
            return long_url
        finally:
            RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

    async def _resolve_from_store(self, code: str, cache_status: CacheStatus) -> str:
        now = utcnow()
        link = await self._links.find_resolvable(code, now)
        if link is None:
            RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=cache_status).inc()
            raise NotFound("URL not found or expired")

        if cache_status is not CacheStatus.DEGRADED:
            ttl = cache_ttl_for(link, self._settings.LINK_CACHE_TTL_SECONDS, now)
            if ttl > 0:
                try:
                    await self._cache.set_url(code, link.long_url, ttl)
                except CacheDegraded as exc:
                    self._logger.warning(f"Cache populate failed for {code}: {exc.detail}")
        return link.long_url
