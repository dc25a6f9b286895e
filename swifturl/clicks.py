"""Background writer for durable click counts.

A redirect must not wait on the database to bump ``clicks``. The redirect
path calls ``enqueue`` (non-blocking) and a single worker task drains the
queue, applying one atomic ``clicks = clicks + 1`` per event through a fresh
repository scope.

Flow Diagram — Click Event
==========================
::
    GET /:code ──► record_click()
                      │
                      ├─► INCR clicks:<code>   (Redis, synchronous)
                      │
                      └─► enqueue(code) ──► asyncio.Queue
                                                │
                                                ▼
                                        ┌──────────────┐
                                        │ worker task  │
                                        │ UPDATE urls  │
                                        │ SET clicks+1 │
                                        └──────────────┘

Key Behaviours
===============
- At-most-once: a full queue, a stopped recorder, a failed UPDATE or a
  process crash all lose the event. Each loss is logged and counted.
- The worker never dies on a bad event; it logs and moves on.
- ``stop`` drains what is queued (bounded by a timeout) before cancelling.
"""

import asyncio
import logging

from prometheus_client import Counter, Gauge

from swifturl.repository import RepositoryFactory

__all__ = ["ClickRecorder"]

CLICK_EVENTS_APPLIED_TOTAL = Counter(
    "swifturl_click_events_applied_total",
    "Click increments written to the database",
)
CLICK_EVENTS_DROPPED_TOTAL = Counter(
    "swifturl_click_events_dropped_total",
    "Click increments lost before reaching the database",
    ["reason"],
)
CLICK_QUEUE_DEPTH = Gauge(
    "swifturl_click_queue_depth",
    "Click increments waiting for the background writer",
)


class ClickRecorder:
    def __init__(
        self,
        repository_factory: RepositoryFactory,
        logger: logging.Logger | None = None,
        max_size: int = 10000,
    ):
        self._repository_factory = repository_factory
        self._logger = logger or logging.getLogger("urlshortener.clicks")
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_size)
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="click-recorder")
        self._logger.info("Click recorder started")

    def enqueue(self, short_code: str) -> bool:
        if not self.running:
            CLICK_EVENTS_DROPPED_TOTAL.labels(reason="stopped").inc()
            self._logger.warning(f"Click recorder not running, dropping click for {short_code}")
            return False
        try:
            self._queue.put_nowait(short_code)
        except asyncio.QueueFull:
            CLICK_EVENTS_DROPPED_TOTAL.labels(reason="queue_full").inc()
            self._logger.warning(f"Click queue full, dropping click for {short_code}")
            return False
        CLICK_QUEUE_DEPTH.set(self._queue.qsize())
        return True

    async def join(self) -> None:
        """Wait until every queued click has been applied or dropped."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            lost = self._queue.qsize()
            CLICK_EVENTS_DROPPED_TOTAL.labels(reason="shutdown").inc(lost)
            self._logger.warning(f"Click recorder stopped with {lost} clicks unwritten")
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._logger.info("Click recorder stopped")

    async def _run(self) -> None:
        while True:
            short_code = await self._queue.get()
            try:
                await self._apply(short_code)
            finally:
                self._queue.task_done()
                CLICK_QUEUE_DEPTH.set(self._queue.qsize())

    async def _apply(self, short_code: str) -> None:
        try:
            async with self._repository_factory() as repository:
                updated = await repository.increment_clicks(short_code)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            CLICK_EVENTS_DROPPED_TOTAL.labels(reason="store_error").inc()
            self._logger.error(f"Error updating click count in database for {short_code}: {exc}")
            return
        if updated:
            CLICK_EVENTS_APPLIED_TOTAL.inc()
        else:
            # URL was deleted between redirect and write
            CLICK_EVENTS_DROPPED_TOTAL.labels(reason="missing").inc()
            self._logger.debug(f"Click for {short_code} skipped, URL no longer stored")
