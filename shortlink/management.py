"""Owner-facing link management: listing, stats and soft delete.

Every read here reports clicks as ``max(durable, cache counter)``. When the
cache is unreachable the durable value is reported alone.
"""

import logging
import math
import uuid
from dataclasses import dataclass

from shortlink.cache import LinkCache
from shortlink.clicks import total_clicks
from shortlink.config import Settings
from shortlink.errors import CacheDegraded, NotFound
from shortlink.models import ShortLink
from shortlink.repository import LinkRepository

__all__ = ["LinkSnapshot", "LinkPage", "LinkManagementService", "clamp_page"]


@dataclass(frozen=True)
class LinkSnapshot:
    link: ShortLink
    total_clicks: int


@dataclass(frozen=True)
class LinkPage:
    items: list[LinkSnapshot]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def clamp_page(page: int | None, limit: int | None, default_limit: int, max_limit: int) -> tuple[int, int]:
    page = page if page and page > 0 else 1
    limit = limit if limit else default_limit
    return page, max(1, min(max_limit, limit))


class LinkManagementService:
    """Reads and deactivates links on behalf of their owner."""

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
    def from_context(cls, ctx) -> "LinkManagementService":
        return cls(LinkRepository(ctx.database), ctx.cache, ctx.settings, ctx.logger)

    async def list_links(self, owner_id: uuid.UUID, page: int | None = None, limit: int | None = None) -> LinkPage:
        page, limit = clamp_page(page, limit, self._settings.LIST_DEFAULT_LIMIT, self._settings.LIST_MAX_LIMIT)
        links = await self._links.list_owned(owner_id, (page - 1) * limit, limit)
        total = await self._links.count_owned(owner_id)

        try:
            counters = await self._cache.get_clicks_many([link.short_code for link in links])
        except CacheDegraded as exc:
            self._logger.warning(f"Cached click counts unavailable for owner {owner_id}: {exc.detail}")
            counters = [0] * len(links)

        items = [
            LinkSnapshot(link=link, total_clicks=total_clicks(link.clicks, counter))
            for link, counter in zip(links, counters)
        ]
        return LinkPage(items=items, page=page, limit=limit, total=total)

    async def get_link_stats(self, owner_id: uuid.UUID, code: str) -> LinkSnapshot:
        link = await self._links.get_owned(code, owner_id)
        if link is None:
            raise NotFound()

        try:
            counter = await self._cache.get_clicks(code)
        except CacheDegraded as exc:
            self._logger.warning(f"Cached click count unavailable for {code}: {exc.detail}")
            counter = 0
        return LinkSnapshot(link=link, total_clicks=total_clicks(link.clicks, counter))

    async def delete_link(self, owner_id: uuid.UUID, code: str) -> None:
        if not await self._links.soft_delete(code, owner_id):
            raise NotFound()

        self._logger.info(f"Link {code} deactivated by owner {owner_id}")
        try:
            await self._cache.evict(code)
        except CacheDegraded as exc:
            self._logger.warning(f"Cache eviction failed for deleted link {code}: {exc.detail}")
