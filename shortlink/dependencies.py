"""Shared resources and per-request dependency injection.

This module owns the process-wide clients (database engine, Redis, click
executor) and hands them to each request through a lightweight context, with
consistent naming across all API endpoints.

Resource Lifecycle
==================
::
    lifespan startup          request                 lifespan shutdown
    ────────────────          ───────                 ─────────────────
    AppResources.startup()    get_request_context()   AppResources.shutdown()
    ├─ logging                ├─ AsyncSession         ├─ stop reconciler
    ├─ engine + sessions      ├─ LinkCache            ├─ drain ClickRecorder
    ├─ Redis client           ├─ ClickRecorder        ├─ close Redis
    ├─ ClickRecorder          └─ LoggerAdapter        └─ dispose engine
    └─ ClickReconciler task

Key Behaviours
===============
- ``AppResources`` lives on ``app.state`` and is injected, never looked up
  through a module-level singleton.
- Only the database session is per request; everything else is shared.
- Shutdown lets detached click increments finish before closing the clients
  they use.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.auth import AuthService
from shortlink.cache import LinkCache
from shortlink.clicks import ClickReconciler, ClickRecorder
from shortlink.config import Settings, get_settings
from shortlink.database import build_engine, build_session_factory, close_db, init_db
from shortlink.enums import HealthStatus
from shortlink.management import LinkManagementService
from shortlink.models import Account
from shortlink.resolution import ResolutionService
from shortlink.shortening import ShorteningService

__all__ = [
    "AppResources",
    "RequestContext",
    "setup_logging",
    "get_resources",
    "get_db",
    "get_request_context",
    "get_shortening_service",
    "get_resolution_service",
    "get_management_service",
    "get_auth_service",
    "get_bearer_token",
    "get_current_account",
]


def setup_logging(settings: Settings) -> logging.Logger:
    logger = logging.getLogger("shortlink")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())
    return logger


# ============================================================================
# SHARED RESOURCES
# ============================================================================


class AppResources:
    """Process-wide clients with an explicit startup/shutdown lifecycle."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis_client: redis.Redis
    cache: LinkCache
    clicks: ClickRecorder

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.logger = setup_logging(self.settings)
        self._reconciler_task: asyncio.Task | None = None
        self._started = False

    async def startup(self) -> None:
        if self._started:
            return
        self.engine = build_engine(self.settings)
        self.session_factory = build_session_factory(self.engine)
        await init_db(self.engine)

        self.redis_client = redis.from_url(
            self.settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=self.settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
        self.cache = LinkCache(self.redis_client, self.settings)
        self.clicks = ClickRecorder(self.cache, self.session_factory, self.logger)

        if self.settings.CLICK_RECONCILE_INTERVAL_SECONDS > 0:
            reconciler = ClickReconciler(
                self.cache, self.session_factory, self.settings, self.logger, recorder=self.clicks
            )
            self._reconciler_task = asyncio.create_task(reconciler.run())

        self._started = True
        self.logger.info(f"{self.settings.APP_NAME} resources initialized ({self.settings.APP_ENV})")

    async def health(self) -> tuple[HealthStatus, HealthStatus]:
        database = HealthStatus.HEALTHY
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            self.logger.error(f"Database health check failed: {exc}")
            database = HealthStatus.UNHEALTHY

        cache = HealthStatus.HEALTHY if await self.cache.ping() else HealthStatus.UNHEALTHY
        if cache is HealthStatus.UNHEALTHY:
            self.logger.error("Cache health check failed")
        return database, cache

    async def shutdown(self) -> None:
        if not self._started:
            return
        if self._reconciler_task is not None:
            self._reconciler_task.cancel()
            # A task that already died keeps its exception; collect it instead of re-raising.
            (outcome,) = await asyncio.gather(self._reconciler_task, return_exceptions=True)
            if isinstance(outcome, Exception):
                self.logger.error(f"Click reconciler had stopped: {outcome!r}")
            self._reconciler_task = None

        await self.clicks.drain(self.settings.CLICK_DRAIN_TIMEOUT_SECONDS)
        await self.redis_client.aclose()
        await close_db(self.engine)
        self._started = False
        self.logger.info("Resources closed")


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view over the shared resources.

    Attributes:
        database: Async database session (only per-request resource)
        resources: Shared process-wide resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    database: AsyncSession
    resources: AppResources
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    tags: list[str] = field(default_factory=list)

    @property
    def cache(self) -> LinkCache:
        return self.resources.cache

    @property
    def clicks(self) -> ClickRecorder:
        return self.resources.clicks

    @property
    def settings(self) -> Settings:
        return self.resources.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger carrying the request context."""
        return logging.LoggerAdapter(
            self.resources.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_resources(request: Request) -> AppResources:
    return request.app.state.resources


async def get_db(resources: AppResources = Depends(get_resources)) -> AsyncGenerator[AsyncSession, None]:
    async with resources.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    resources: AppResources = Depends(get_resources),
) -> RequestContext:
    return RequestContext(
        database=db,
        resources=resources,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


def get_shortening_service(ctx: RequestContext = Depends(get_request_context)) -> ShorteningService:
    return ShorteningService.from_context(ctx)


def get_resolution_service(ctx: RequestContext = Depends(get_request_context)) -> ResolutionService:
    return ResolutionService.from_context(ctx)


def get_management_service(ctx: RequestContext = Depends(get_request_context)) -> LinkManagementService:
    return LinkManagementService.from_context(ctx)


def get_auth_service(ctx: RequestContext = Depends(get_request_context)) -> AuthService:
    return AuthService.from_context(ctx)


def get_bearer_token(request: Request, resources: AppResources = Depends(get_resources)) -> str | None:
    token = request.cookies.get(resources.settings.AUTH_COOKIE_NAME)
    if token:
        return token
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_account(
    token: str | None = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> Account:
    return await auth.authenticate(token)
