"""Expiration sweeper for SwiftURL.

Lookups delete an expired URL the first time somebody asks for it; the
sweeper catches the ones nobody asks for. It runs on a fixed interval
(hourly by default) inside the API process.

Flow Diagram — cleanup_expired_urls()
=====================================
::
    ┌──────────────────────┐
    │ DELETE FROM urls      │
    │ WHERE expires_at < now│
    │ RETURNING short_code  │
    └──────────┬───────────┘
               ▼
    ┌──────────────────────┐
    │ for each code:        │
    │   DEL url:<code>      │
    │   DEL clicks:<code>   │
    └──────────┬───────────┘
               ▼
        CleanupResult(cleaned=n)

Key Behaviours
===============
- No locking against in-flight lookups. A lookup that read a record just
  before the sweep may serve it once more; that is the accepted staleness.
- A failed sweep is logged and retried at the next tick; the loop survives.
- Cache clearing is best effort (see ``URLCache``).
"""

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from prometheus_client import Counter

from swifturl.cache import URLCache
from swifturl.repository import RepositoryFactory
from swifturl.schemas import utc_now

__all__ = ["CleanupResult", "CleanupStats", "ExpirationSweeper"]

EXPIRED_URLS_SWEPT_TOTAL = Counter(
    "swifturl_expired_urls_swept_total",
    "URLs deleted by the periodic expiration sweep",
)
CLEANUP_RUNS_TOTAL = Counter(
    "swifturl_cleanup_runs_total",
    "Expiration sweep runs",
    ["status"],
)


@dataclass
class CleanupResult:
    cleaned: int
    short_codes: list[str] = field(default_factory=list)


@dataclass
class CleanupStats:
    total_urls: int
    urls_with_expiry: int
    expired_urls: int


class ExpirationSweeper:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        cache: URLCache,
        logger: logging.Logger | None = None,
        interval_seconds: float = 3600,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self._repository_factory = repository_factory
        self._cache = cache
        self._logger = logger or logging.getLogger("urlshortener.cleanup")
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None

    async def cleanup_expired_urls(self) -> CleanupResult:
        self._logger.info("Starting cleanup of expired URLs...")
        async with self._repository_factory() as repository:
            codes = await repository.delete_expired(self._clock())

        if not codes:
            self._logger.info("No expired URLs found")
            return CleanupResult(cleaned=0)

        for short_code in codes:
            await self._cache.clear(short_code)
            self._logger.debug(f"Cleaned up expired URL: {short_code}")

        EXPIRED_URLS_SWEPT_TOTAL.inc(len(codes))
        self._logger.info(f"Cleanup completed: {len(codes)} expired URLs deleted")
        return CleanupResult(cleaned=len(codes), short_codes=codes)

    async def get_cleanup_stats(self) -> CleanupStats:
        async with self._repository_factory() as repository:
            counts = await repository.count_stats(self._clock())
        return CleanupStats(
            total_urls=counts.total_urls,
            urls_with_expiry=counts.urls_with_expiry,
            expired_urls=counts.expired_urls,
        )

    async def run_periodic(self) -> None:
        self._logger.info(f"Scheduling expired URL cleanup every {self._interval}s")
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.cleanup_expired_urls()
                CLEANUP_RUNS_TOTAL.labels(status="success").inc()
                stats = await self.get_cleanup_stats()
                self._logger.info(
                    f"URL table: {stats.total_urls} total, {stats.urls_with_expiry} with expiry, "
                    f"{stats.expired_urls} expired"
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                CLEANUP_RUNS_TOTAL.labels(status="error").inc()
                self._logger.error(f"Error during cleanup process: {exc}")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_periodic(), name="expiration-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
