"""Shortening service: guest links and owned links.

Flow Diagram — Owned Link Creation
==================================
::
    ┌─────────────┐
    │ create_link │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL│──── invalid ──► InvalidInput
    │ code, expiry│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Active link │──── yes ──► return it (created=False)
    │ for owner + │
    │ URL?        │
    └──────┬──────┘
           ▼ no
    ┌─────────────┐      ┌─────────────────┐
    │ customCode? │─yes─►│ code in use? ───┼── yes ──► CodeTaken
    └──────┬──────┘      │ insert          │
           │ no          └────────┬────────┘
           ▼                      │
    ┌─────────────┐               │
    │ generate +  │ ◄─┐ collision │
    │ check +     │ ──┘ (max 10)  │
    │ insert      │──► GenerationExhausted
    └──────┬──────┘               │
           ▼                      ▼
    ┌──────────────────────────────┐
    │ write-through cache          │
    │ (failure logged, not fatal)  │
    └──────────────────────────────┘

Flow Diagram — Guest Link Creation
==================================
::
    ┌─────────────┐     ┌─────────────┐     ┌─────────────┐
    │ Validate URL│ ──► │ generate    │ ──► │ SET url:code│
    │             │     │ code        │     │ NX EX 24h   │
    └─────────────┘     └─────────────┘     └──────┬──────┘
                               ▲     taken         │
                               └───────────────────┤
                                                   ▼ stored
                                             GuestLinkData

Key Behaviours
===============
- Uniqueness is enforced by the store's unique indexes; the pre-insert check
  only avoids a wasted insert. A racing duplicate surfaces as ``DuplicateKey``.
- Creating the same URL twice for one owner returns the first link, also when
  the second call loses an insert race against the first.
- Guest links have no durable row; the cache is their only store, so cache
  failures are fatal there.
"""

import datetime
import logging
import time
import uuid
from dataclasses import dataclass

from prometheus_client import Counter, Histogram

from shortlink.cache import LinkCache
from shortlink.codegen import generate_short_code
from shortlink.config import Settings
from shortlink.enums import RequestStatus
from shortlink.errors import (
    CacheDegraded,
    CodeTaken,
    DuplicateKey,
    GenerationExhausted,
    InvalidInput,
    ServiceUnavailable,
)
from shortlink.models import ShortLink
from shortlink.repository import LinkRepository
from shortlink.validation import normalize_custom_code, normalize_expiry, normalize_long_url, utcnow

__all__ = ["GuestLink", "ShorteningService", "cache_ttl_for"]

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total link creation requests",
    ["kind", "status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
CODE_COLLISIONS_TOTAL = Counter(
    "shortlink_code_collisions_total",
    "Generated short codes rejected because they were already in use",
    ["kind"],
)


@dataclass(frozen=True)
class GuestLink:
    short_code: str
    long_url: str
    short_url: str
    expires_in: int


def cache_ttl_for(link: ShortLink, default_ttl: int, now: datetime.datetime) -> int:
    """Cache lifetime for a link: never past its expiry. 0 means do not cache."""
    if link.expires_at is None:
        return default_ttl
    remaining = int((link.expires_at - now).total_seconds())
    return max(0, min(default_ttl, remaining))


class ShorteningService:
    """Creates guest and owned short links."""

    def __init__(
        self,
        repository: LinkRepository,
        cache: LinkCache,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._links = repository
        self._cache = cache
        self._settings = settings
        self._logger = logger

    @classmethod
    def from_context(cls, ctx) -> "ShorteningService":
        return cls(LinkRepository(ctx.database), ctx.cache, ctx.settings, ctx.logger)

    # ========================================================================
    # GUEST LINKS
    # ========================================================================

    async def create_guest_link(self, long_url: str) -> GuestLink:
        long_url = normalize_long_url(long_url, self._settings.MAX_URL_LENGTH)
        ttl = self._settings.GUEST_LINK_TTL_SECONDS

        for _ in range(self._settings.CODE_GENERATION_ATTEMPTS):
            code = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            try:
                reserved = await self._cache.reserve_url(code, long_url, ttl)
            except CacheDegraded as exc:
                LINK_CREATION_REQUESTS_TOTAL.labels(kind="guest", status=RequestStatus.ERROR).inc()
                self._logger.error(f"Guest link creation failed, cache unavailable: {exc.detail}")
                raise ServiceUnavailable(detail=exc.detail) from exc
            if reserved:
                LINK_CREATION_REQUESTS_TOTAL.labels(kind="guest", status=RequestStatus.SUCCESS).inc()
                self._logger.info(f"Guest link created: {code}")
                return GuestLink(
                    short_code=code,
                    long_url=long_url,
                    short_url=f"{self._settings.BASE_URL}/{code}",
                    expires_in=ttl,
                )
            CODE_COLLISIONS_TOTAL.labels(kind="guest").inc()

        LINK_CREATION_REQUESTS_TOTAL.labels(kind="guest", status=RequestStatus.ERROR).inc()
        raise GenerationExhausted()

    # ========================================================================
    # OWNED LINKS
    # ========================================================================

    async def create_link(
        self,
        owner_id: uuid.UUID,
        long_url: str,
        custom_code: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> tuple[ShortLink, bool]:
        """Create a link for ``owner_id``; return ``(link, created)``.

        ``created`` is False when the owner already had an active link for
        ``long_url``, in which case that link is returned unchanged.
        """
        start_time = time.perf_counter()
        try:
            long_url = normalize_long_url(long_url, self._settings.MAX_URL_LENGTH)
            custom_code = normalize_custom_code(custom_code)
            expires_at = normalize_expiry(expires_at)

            existing = await self._links.find_active_for_owner(owner_id, long_url)
            if existing is not None:
                LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.EXISTING).inc()
                self._logger.info(f"Link already exists for owner {owner_id}: {existing.short_code}")
                return existing, False

            if custom_code:
                link, created = await self._insert_custom(owner_id, long_url, custom_code, expires_at)
            else:
                link, created = await self._insert_generated(owner_id, long_url, expires_at)

            if created:
                await self._write_through(link)
                LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.SUCCESS).inc()
                self._logger.info(
                    f"Link created: {link.short_code} in {time.perf_counter() - start_time:.3f}s"
                )
            else:
                LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.EXISTING).inc()
            return link, created

        except InvalidInput as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"Link creation rejected: {exc.message}")
            raise
        except CodeTaken as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.CONFLICT).inc()
            self._logger.warning(f"Link creation conflict: {exc.message}")
            raise
        except (GenerationExhausted, ServiceUnavailable) as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(kind="owned", status=RequestStatus.ERROR).inc()
            self._logger.error(f"Link creation failed: {exc.message} ({exc.detail})")
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

    async def _insert_custom(
        self,
        owner_id: uuid.UUID,
        long_url: str,
        code: str,
        expires_at: datetime.datetime | None,
    ) -> tuple[ShortLink, bool]:
        if await self._links.code_in_use(code):
            raise CodeTaken()
        link = ShortLink(
            long_url=long_url,
            short_code=code,
            custom_code=code,
            owner_id=owner_id,
            expires_at=expires_at,
        )
        try:
            return await self._links.insert(link), True
        except DuplicateKey:
            winner = await self._links.find_active_for_owner(owner_id, long_url)
            if winner is not None:
                return winner, False
            raise CodeTaken() from None

    async def _insert_generated(
        self,
        owner_id: uuid.UUID,
        long_url: str,
        expires_at: datetime.datetime | None,
    ) -> tuple[ShortLink, bool]:
        for attempt in range(1, self._settings.CODE_GENERATION_ATTEMPTS + 1):
            code = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            if await self._links.code_in_use(code):
                CODE_COLLISIONS_TOTAL.labels(kind="owned").inc()
                self._logger.debug(f"Generated code {code} already in use (attempt {attempt})")
                continue
            link = ShortLink(long_url=long_url, short_code=code, owner_id=owner_id, expires_at=expires_at)
            try:
                return await self._links.insert(link), True
            except DuplicateKey:
                winner = await self._links.find_active_for_owner(owner_id, long_url)
                if winner is not None:
                    return winner, False
                CODE_COLLISIONS_TOTAL.labels(kind="owned").inc()
                self._logger.debug(f"Insert collision for {code} (attempt {attempt})")

        raise GenerationExhausted()

    async def _write_through(self, link: ShortLink) -> None:
        ttl = cache_ttl_for(link, self._settings.LINK_CACHE_TTL_SECONDS, utcnow())
        if ttl <= 0:
            return
        try:
            await self._cache.set_url(link.short_code, link.long_url, ttl)
        except CacheDegraded as exc:
            self._logger.warning(f"Cache write-through failed for {link.short_code}: {exc.detail}")
