"""Durable store access for links and accounts.

The repositories are the only modules that issue SQL. They translate store
failures into the service error taxonomy:

- a unique-index violation on insert becomes ``DuplicateKey``;
- any other ``SQLAlchemyError``, or a connection-level ``OSError`` raised by
  the driver before SQLAlchemy can wrap it, becomes ``ServiceUnavailable``.

Flow Diagram — Soft Delete (compare-and-set)
============================================
::
    ┌──────────────────────────────────────┐
    │ UPDATE short_links SET is_active=f   │
    │ WHERE short_code=:c AND owner_id=:o  │
    │   AND is_active                      │
    └──────────────────┬───────────────────┘
              rowcount │
          ┌────────────┴────────────┐
          │ 1                       │ 0
          ▼                         ▼
    ┌───────────┐            ┌──────────────┐
    │ deleted   │            │ not found /  │
    │ (commit)  │            │ not owner /  │
    └───────────┘            │ already gone │
                             └──────────────┘

Key Behaviours
===============
- Resolvable lookups filter on ``is_active`` and ``expires_at`` in SQL.
- Click updates are relative (``clicks = clicks + 1``) or raise-only
  (``WHERE clicks < :value``), so concurrent writers never lower the total.
- Uniqueness checks cover both code columns of every row, active or not.

Classes:
    LinkRepository:  Queries and mutations for ``short_links``.
    AccountRepository:  Queries and mutations for ``accounts``.
"""

import datetime
import functools
import uuid
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from prometheus_client import Counter
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlink.errors import DuplicateKey, ServiceUnavailable, ShortLinkError
from shortlink.models import Account, ShortLink

__all__ = ["LinkRepository", "AccountRepository"]

P = ParamSpec("P")
T = TypeVar("T")

DATABASE_READS_TOTAL = Counter(
    "shortlink_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "shortlink_database_writes_total",
    "Total database write operations",
)


def _durable(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except ShortLinkError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            raise ServiceUnavailable(detail=f"{func.__name__}: {exc}") from exc

    return wrapper


class _Repository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def _insert(self, row: ShortLink | Account) -> None:
        self._session.add(row)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateKey(detail=str(exc.orig)) from exc
        DATABASE_WRITES_TOTAL.inc()
        await self._session.refresh(row)


class LinkRepository(_Repository):
    """Queries and mutations for durable short links."""

    @_durable
    async def find_active_for_owner(self, owner_id: uuid.UUID, long_url: str) -> ShortLink | None:
        result = await self._session.execute(
            select(ShortLink).where(
                ShortLink.owner_id == owner_id,
                ShortLink.long_url == long_url,
                ShortLink.is_active.is_(True),
            )
        )
        DATABASE_READS_TOTAL.inc()
        return result.scalars().first()

    @_durable
    async def code_in_use(self, code: str) -> bool:
        result = await self._session.execute(
            select(ShortLink.id)
            .where(or_(ShortLink.short_code == code, ShortLink.custom_code == code))
            .limit(1)
        )
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none() is not None

    @_durable
    async def insert(self, link: ShortLink) -> ShortLink:
        await self._insert(link)
        return link

    @_durable
    async def find_resolvable(self, code: str, now: datetime.datetime) -> ShortLink | None:
        result = await self._session.execute(
            select(ShortLink).where(
                ShortLink.short_code == code,
                ShortLink.is_active.is_(True),
                or_(ShortLink.expires_at.is_(None), ShortLink.expires_at > now),
            )
        )
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    @_durable
    async def get_owned(self, code: str, owner_id: uuid.UUID) -> ShortLink | None:
        result = await self._session.execute(
            select(ShortLink).where(
                ShortLink.short_code == code,
                ShortLink.owner_id == owner_id,
                ShortLink.is_active.is_(True),
            )
        )
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    @_durable
    async def list_owned(self, owner_id: uuid.UUID, offset: int, limit: int) -> list[ShortLink]:
        result = await self._session.execute(
            select(ShortLink)
            .where(ShortLink.owner_id == owner_id, ShortLink.is_active.is_(True))
            .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
            .offset(offset)
            .limit(limit)
        )
        DATABASE_READS_TOTAL.inc()
        return list(result.scalars().all())

    @_durable
    async def count_owned(self, owner_id: uuid.UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(ShortLink)
            .where(ShortLink.owner_id == owner_id, ShortLink.is_active.is_(True))
        )
        DATABASE_READS_TOTAL.inc()
        return int(result.scalar_one())

    @_durable
    async def increment_clicks(self, code: str, delta: int = 1) -> bool:
        result = await self._session.execute(
            update(ShortLink)
            .where(ShortLink.short_code == code)
            .values(clicks=ShortLink.clicks + delta)
        )
        await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()
        return result.rowcount > 0

    @_durable
    async def raise_clicks_to(self, code: str, value: int) -> bool:
        """Set ``clicks`` to ``value`` only when the stored total is lower."""
        result = await self._session.execute(
            update(ShortLink)
            .where(and_(ShortLink.short_code == code, ShortLink.clicks < value))
            .values(clicks=value)
        )
        await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()
        return result.rowcount > 0

    @_durable
    async def soft_delete(self, code: str, owner_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            update(ShortLink)
            .where(
                ShortLink.short_code == code,
                ShortLink.owner_id == owner_id,
                ShortLink.is_active.is_(True),
            )
            .values(is_active=False)
        )
        await self._session.commit()
        DATABASE_WRITES_TOTAL.inc()
        return result.rowcount == 1

    @_durable
    async def active_codes_after(self, after_id: uuid.UUID | None, limit: int) -> list[tuple[uuid.UUID, str]]:
        """Keyset page of ``(id, short_code)`` for active links, ordered by id."""
        query = select(ShortLink.id, ShortLink.short_code).where(ShortLink.is_active.is_(True))
        if after_id is not None:
            query = query.where(ShortLink.id > after_id)
        result = await self._session.execute(query.order_by(ShortLink.id).limit(limit))
        DATABASE_READS_TOTAL.inc()
        return [(row.id, row.short_code) for row in result.all()]


class AccountRepository(_Repository):
    """Queries and mutations for accounts."""

    @_durable
    async def get(self, account_id: uuid.UUID) -> Account | None:
        account = await self._session.get(Account, account_id)
        DATABASE_READS_TOTAL.inc()
        return account

    @_durable
    async def find_by_email(self, email: str) -> Account | None:
        result = await self._session.execute(select(Account).where(Account.email == email))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none()

    @_durable
    async def exists(self, username: str, email: str) -> bool:
        result = await self._session.execute(
            select(Account.id).where(or_(Account.username == username, Account.email == email)).limit(1)
        )
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none() is not None

    @_durable
    async def insert(self, account: Account) -> Account:
        await self._insert(account)
        return account
