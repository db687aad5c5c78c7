"""SQLAlchemy ORM models for the shortlink service.

This module defines the durable schema: accounts and the short links they own.
Guest links never reach these tables, they live in Redis only.

Data Model Layout
=================
::
    accounts table
    ├─ id (UUID PRIMARY KEY)
    ├─ username (VARCHAR(30) UNIQUE)
    ├─ email (VARCHAR(320) UNIQUE)
    ├─ password_hash (VARCHAR(128) NOT NULL)
    ├─ is_active (BOOLEAN DEFAULT TRUE)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    short_links table
    ├─ id (UUID PRIMARY KEY)
    ├─ long_url (TEXT NOT NULL)
    ├─ short_code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ custom_code (VARCHAR(20) UNIQUE, NULLABLE)
    ├─ owner_id (UUID FK accounts.id, NULLABLE)
    ├─ clicks (INTEGER DEFAULT 0)
    ├─ is_active (BOOLEAN DEFAULT TRUE)
    ├─ expires_at (TIMESTAMPTZ NULLABLE)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

Indexes
=======
::
    short_links
    ├─ UNIQUE (short_code)                      all rows, active or not
    ├─ UNIQUE (custom_code)                     NULLs never collide
    ├─ (owner_id, created_at)                   owner listing
    └─ UNIQUE (owner_id, long_url) WHERE active one live link per owner and URL

How to Use
===========
**Step 1 — Import**::
    from shortlink.models import ShortLink

**Step 2 — Create a new link**::
    link = ShortLink(short_code="abc12345", long_url="https://example.com", owner_id=owner)
    session.add(link)
    await session.commit()

**Step 3 — Check resolvability**::
    if link.is_resolvable(now):
        ...

Key Behaviours
===============
- short_code is unique across active and soft-deleted rows, so a code is never reused.
- Rows are never hard-deleted; is_active flips from true to false exactly once.
- clicks only ever grows; it is the durable baseline for click totals.

Classes:
    Account:  A registered user that owns links.
    ShortLink:  A durable short code to long URL mapping with click tracking.
"""

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["Account", "ShortLink"]


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, username='{self.username}', active={self.is_active})>"


class ShortLink(Base):
    __tablename__ = "short_links"
    __table_args__ = (
        Index("ix_short_links_owner_created", "owner_id", "created_at"),
        Index(
            "uq_short_links_owner_url_active",
            "owner_id",
            "long_url",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    short_code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    custom_code: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=True
    )
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_resolvable(self, now: datetime.datetime) -> bool:
        return bool(self.is_active) and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"
