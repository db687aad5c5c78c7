"""Database engine and session factory for the shortlink service.

This module provides SQLAlchemy async engine setup and database lifecycle
operations using PostgreSQL as the durable store.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  lifespan   │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ build_engine│
    │ (pool)      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ build_      │
    │ session_    │
    │ factory()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Sessions per│
    │ request and │
    │ per click   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ (dispose)   │
    └─────────────┘

How to Use
===========
**Step 1 — Build on startup**::
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    await init_db(engine)

**Step 2 — Open a session**::
    async with session_factory() as session:
        result = await session.execute(select(ShortLink))

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- The engine is owned by ``AppResources`` and never reached through a module global.
- Connection pooling is configured for production workloads with pre-ping.
- Sessions do not expire objects on commit so rows stay readable after commit.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    build_engine():  Creates the async engine from settings.
    build_session_factory():  Creates the async session factory.
    init_db():  Creates all tables.
    close_db():  Disposes the engine.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import Settings

__all__ = ["Base", "build_engine", "build_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Model modules must be imported before create_all sees their tables.
    import shortlink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
