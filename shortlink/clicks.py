"""Click accounting: detached increments and periodic reconciliation.

A redirect never waits for click accounting. ``ClickRecorder`` turns each
click into two independent detached tasks, one for the Redis counter and one
for the durable ``clicks`` column. Either may fail; failures are logged and
counted, never raised. Readers combine both sides with ``total_clicks``.

Flow Diagram — Click Recording
==============================
::
    ┌─────────────┐
    │ resolve()   │
    │ succeeded   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ record(code)│  (returns immediately)
    └──────┬──────┘
     ┌─────┴──────────────┐
     ▼                    ▼
┌──────────────┐   ┌──────────────────┐
│ INCR         │   │ UPDATE clicks =  │
│ clicks:code  │   │ clicks + 1       │
│ (+EXPIRE 30d)│   │ (own session)    │
└──────────────┘   └──────────────────┘
     │ error               │ error
     ▼                     ▼
   log + metric          log + metric

Flow Diagram — Reconciliation Sweep
===================================
::
    ┌─────────────┐
    │ page of     │◄──────────────┐
    │ active codes│               │
    └──────┬──────┘               │
           ▼                      │
    ┌─────────────┐               │
    │ MGET        │               │
    │ clicks:*    │               │
    └──────┬──────┘               │
           ▼                      │
    ┌─────────────┐               │
    │ UPDATE ...  │  next page    │
    │ WHERE clicks│───────────────┘
    │ < counter   │
    └─────────────┘

Key Behaviours
===============
- The two increments are unordered; readers use ``max(durable, counter)``.
- ``drain`` lets in-flight increments finish during shutdown.
- Reconciliation only raises durable totals, so it can run alongside live traffic.
- A sweep skips codes with a durable increment still in flight in this process.
  Otherwise the sweep can copy a counter that already includes the click and
  the late increment then adds it a second time. Increments in flight in other
  processes are not visible, so a sweep can still over-count such a code by
  the clicks racing it.
- The sweep loop logs and survives any error, so shutdown never inherits one.
- A counter that expired before reconciliation loses at most the clicks whose
  durable increment also failed.

Classes:
    ClickRecorder:  Background executor for fire-and-forget increments.
    ClickReconciler:  Periodic sweep folding counters into durable totals.

Functions:
    total_clicks():  The max-of-both read rule.
"""

import asyncio
import collections
import logging

from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.cache import LinkCache
from shortlink.config import Settings
from shortlink.errors import CacheDegraded, ServiceUnavailable
from shortlink.repository import LinkRepository

__all__ = ["ClickRecorder", "ClickReconciler", "total_clicks"]

logger = logging.getLogger("shortlink.clicks")

CLICKS_RECORDED_TOTAL = Counter(
    "shortlink_clicks_recorded_total",
    "Click increments applied, by target store",
    ["target"],
)
CLICK_RECORD_FAILURES_TOTAL = Counter(
    "shortlink_click_record_failures_total",
    "Click increments that failed, by target store",
    ["target"],
)
CLICKS_RECONCILED_TOTAL = Counter(
    "shortlink_clicks_reconciled_total",
    "Links whose durable click total was raised to the cache counter",
)


def total_clicks(durable: int | None, counter: int | None) -> int:
    return max(durable or 0, counter or 0)


class ClickRecorder:
    """Runs click increments as detached tasks owned by the process."""

    def __init__(
        self,
        cache: LinkCache,
        session_factory: async_sessionmaker[AsyncSession],
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._cache = cache
        self._session_factory = session_factory
        self._logger = log or logger
        self._tasks: set[asyncio.Task] = set()
        self._in_flight: collections.Counter[str] = collections.Counter()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def has_pending(self, code: str) -> bool:
        """True while a durable increment for ``code`` has not finished."""
        return self._in_flight[code] > 0

    def record(self, code: str) -> None:
        if self._closed:
            self._logger.warning(f"Click for {code} dropped, recorder is closed")
            return
        self._spawn(self._increment_counter(code))
        self._in_flight[code] += 1
        durable = self._spawn(self._increment_durable(code))
        durable.add_done_callback(lambda _: self._settle(code))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._reap)
        return task

    def _settle(self, code: str) -> None:
        self._in_flight[code] -= 1
        if self._in_flight[code] <= 0:
            del self._in_flight[code]

    def _reap(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._logger.error(f"Click increment crashed: {task.exception()!r}")

    async def _increment_counter(self, code: str) -> None:
        try:
            await self._cache.increment_clicks(code)
            CLICKS_RECORDED_TOTAL.labels(target="cache").inc()
        except CacheDegraded as exc:
            CLICK_RECORD_FAILURES_TOTAL.labels(target="cache").inc()
            self._logger.warning(f"Cache click increment failed for {code}: {exc.detail}")

    async def _increment_durable(self, code: str) -> None:
        try:
            async with self._session_factory() as session:
                await LinkRepository(session).increment_clicks(code)
            CLICKS_RECORDED_TOTAL.labels(target="database").inc()
        except ServiceUnavailable as exc:
            CLICK_RECORD_FAILURES_TOTAL.labels(target="database").inc()
            self._logger.error(f"Durable click increment failed for {code}: {exc.detail}")

    def close(self) -> None:
        self._closed = True

    async def drain(self, timeout: float) -> None:
        """Stop accepting clicks and wait up to ``timeout`` seconds for in-flight ones."""
        self.close()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            self._logger.warning(f"{len(pending)} click increments still running after drain timeout")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


class ClickReconciler:
    """Periodically raises durable click totals to the cache counters."""

    def __init__(
        self,
        cache: LinkCache,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        log: logging.Logger | logging.LoggerAdapter | None = None,
        recorder: ClickRecorder | None = None,
    ):
        self._cache = cache
        self._session_factory = session_factory
        self._interval = settings.CLICK_RECONCILE_INTERVAL_SECONDS
        self._batch_size = settings.CLICK_RECONCILE_BATCH_SIZE
        self._logger = log or logger
        self._recorder = recorder

    def _in_flight(self, code: str) -> bool:
        return self._recorder is not None and self._recorder.has_pending(code)

    async def sweep(self) -> int:
        """Run one full pass; return the number of links updated."""
        updated = 0
        after_id = None
        async with self._session_factory() as session:
            repository = LinkRepository(session)
            while True:
                page = await repository.active_codes_after(after_id, self._batch_size)
                if not page:
                    break
                codes = [code for _, code in page]
                counters = await self._cache.get_clicks_many(codes)
                for code, counter in zip(codes, counters):
                    if counter <= 0 or self._in_flight(code):
                        continue
                    if await repository.raise_clicks_to(code, counter):
                        updated += 1
                after_id = page[-1][0]
                if len(page) < self._batch_size:
                    break
        CLICKS_RECONCILED_TOTAL.inc(updated)
        return updated

    async def run(self) -> None:
        self._logger.info(f"Click reconciler started (interval {self._interval}s)")
        while True:
            await asyncio.sleep(self._interval)
            try:
                updated = await self.sweep()
                self._logger.info(f"Click reconciliation raised {updated} durable totals")
            except (CacheDegraded, ServiceUnavailable) as exc:
                self._logger.warning(f"Click reconciliation skipped: {exc.message} ({exc.detail})")
            except Exception as exc:
                self._logger.error(f"Click reconciliation failed: {exc!r}")
