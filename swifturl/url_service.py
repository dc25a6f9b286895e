"""URL Shortener Service Layer - Core Business Logic

This module holds the creation workflow, the cache-aside resolution engine and
click accounting. It talks to the durable store through ``URLRepository``, to
Redis through ``URLCache`` and hands durable click writes to ``ClickRecorder``.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                 URLShorteningService                        │
    │  create_short_url()   resolve()   record_click()            │
    │  get_url_statistics() list_urls()                           │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │  URLRepository  │  │    URLCache     │  │  ClickRecorder  │
    │  (PostgreSQL)   │  │ (Redis, optional)│ │ (asyncio queue) │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

URL Creation Flow
-----------------
::
    ┌─────────────┐
    │ customCode?  │
    └──────┬──────┘
     YES   │   NO
    ┌──────┴──────────────┐
    ▼                     ▼
┌──────────┐     ┌────────────────┐
│ exists?  │     │ generate until │
│ → 409    │     │ unused         │
└────┬─────┘     └───────┬────────┘
     └─────────┬─────────┘
               ▼
    ┌─────────────────────┐
    │ INSERT              │── unique violation ─► custom: 409
    │                     │                       generated: regenerate
    └──────────┬──────────┘
               ▼
    ┌─────────────────────┐
    │ SETEX url:<code>     │  (best effort)
    └─────────────────────┘

Resolution Flow (cache-aside)
-----------------------------
::
    ┌─────────────┐
    │ GET url:code │── error ─► treat as miss
    └──────┬──────┘
    HIT?   │
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              │
┌──────────┐       │
│ SELECT   │─ none ─► URLNotFoundError
│ + SETEX  │       │
└────┬─────┘       │
     └──────┬──────┘
            ▼
    ┌──────────────────┐
    │ expires_at < now? │── YES ─► DELETE row, DEL url:/clicks:,
    └────────┬─────────┘          URLExpiredError
             ▼ NO
         URLRecord

Key Behaviours
===============
- The cache is never required for correctness; every cache call degrades.
- Expiry is checked on cached data exactly as on stored data.
- Resolving an expired URL deletes it: the first caller gets 410, later
  callers get 404.
- Lazy deletion is pinned to the row id that was read, and an expired record
  is never written back to the cache.
- Generated-code creation gives up with a 503 after MAX_CODE_ATTEMPTS
  collisions.
- Stats come from the store only and never delete anything.
- Click accounting never raises.
"""

import datetime
import logging
import time
from collections.abc import Callable

from prometheus_client import Counter, Histogram

from swifturl.cache import URLCache
from swifturl.clicks import ClickRecorder
from swifturl.codes import generate_short_code
from swifturl.config import Settings
from swifturl.enums import CacheStatus, RequestStatus
from swifturl.exceptions import (
    CustomCodeTakenError,
    InvalidURLError,
    ServiceUnavailableError,
    ShortCodeConflict,
    URLExpiredError,
    URLNotFoundError,
)
from swifturl.repository import URLRepository
from swifturl.schemas import URLCreate, URLRecord, URLStats, utc_now, validate_long_url

__all__ = ["URLShorteningService"]

# Generated-code attempts before creation gives up
MAX_CODE_ATTEMPTS = 10


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

URL_CREATION_REQUESTS_TOTAL = Counter(
    "swifturl_creation_requests_total",
    "Total URL creation requests",
    ["status"],
)
URL_LOOKUP_REQUESTS_TOTAL = Counter(
    "swifturl_lookup_requests_total",
    "Total URL lookup requests",
    ["status", "cache_hit"],
)
URL_CLICKS_TOTAL = Counter(
    "swifturl_clicks_total",
    "Total clicks recorded on redirects",
)
URL_EXPIRED_ON_READ_TOTAL = Counter(
    "swifturl_expired_on_read_total",
    "URLs deleted because a lookup found them expired",
)
SHORT_CODE_COLLISIONS_TOTAL = Counter(
    "swifturl_short_code_collisions_total",
    "Generated short codes that were already taken",
)
URL_CREATION_DURATION = Histogram(
    "swifturl_creation_duration_seconds",
    "Time taken to create short URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
URL_LOOKUP_DURATION = Histogram(
    "swifturl_lookup_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class URLShorteningService:
    """Core service class for URL shortening operations.

    Example:
        >>> service = URLShorteningService.from_context(ctx)
        >>> record = await service.create_short_url(URLCreate(long_url="https://example.com"))
        >>> record = await service.resolve(record.short_code)
        >>> await service.record_click(record.short_code)
    """

    def __init__(
        self,
        repository: URLRepository,
        cache: URLCache,
        clicks: ClickRecorder | None,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self._repository = repository
        self._cache = cache
        self._clicks = clicks
        self._settings = settings
        self._logger = logger or logging.getLogger("urlshortener")
        self._clock = clock

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "URLShorteningService":  # noqa: F821
        """Build a service from a RequestContext (see ``swifturl.dependencies``)."""
        return cls(
            repository=URLRepository(ctx.database),
            cache=ctx.cache,
            clicks=ctx.click_recorder,
            settings=ctx.settings,
            logger=ctx.logger,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create_short_url(self, request: URLCreate) -> URLRecord:
        """Persist a new short URL and warm the cache with it.

        Raises:
            InvalidURLError: ``request.long_url`` is not an http(s) URL.
            CustomCodeTakenError: the custom code exists, including when a
                concurrent request claimed it between our check and insert.
        """
        start_time = time.perf_counter()
        try:
            long_url = validate_long_url(request.long_url)
            if request.custom_code:
                record = await self._create_with_custom_code(long_url, request.custom_code, request.expires_at)
            else:
                record = await self._create_with_generated_code(long_url, request.expires_at)
        except CustomCodeTakenError:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.CONFLICT).inc()
            self._logger.info(f"Custom code unavailable: {request.custom_code}")
            raise
        except InvalidURLError:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            raise
        except Exception:
            URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            raise
        finally:
            URL_CREATION_DURATION.observe(time.perf_counter() - start_time)

        await self._cache.set_url(record, self._settings.CACHE_TTL)
        URL_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(f"Created short URL: {record.short_code} -> {record.long_url}")
        return record

    async def _create_with_custom_code(
        self, long_url: str, short_code: str, expires_at: datetime.datetime | None
    ) -> URLRecord:
        if await self._repository.exists(short_code):
            raise CustomCodeTakenError(short_code)
        try:
            return await self._repository.insert(long_url, short_code, expires_at)
        except ShortCodeConflict as exc:
            raise CustomCodeTakenError(short_code) from exc

    async def _create_with_generated_code(
        self, long_url: str, expires_at: datetime.datetime | None
    ) -> URLRecord:
        for _ in range(MAX_CODE_ATTEMPTS):
            short_code = generate_short_code(self._settings.SHORT_CODE_LENGTH)
            if await self._repository.exists(short_code):
                SHORT_CODE_COLLISIONS_TOTAL.inc()
                continue
            try:
                return await self._repository.insert(long_url, short_code, expires_at)
            except ShortCodeConflict:
                SHORT_CODE_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Generated code {short_code} claimed concurrently, retrying")

        self._logger.error(f"No free short code after {MAX_CODE_ATTEMPTS} attempts")
        raise ServiceUnavailableError(details=["Could not allocate a unique short code"])

    # ========================================================================
    # RESOLUTION
    # ========================================================================

    async def resolve(self, short_code: str) -> URLRecord:
        """Resolve a short code through the cache, then the store.

        Raises:
            URLNotFoundError: no URL is stored under ``short_code``.
            URLExpiredError: the URL had expired; it has now been deleted.
        """
        start_time = time.perf_counter()
        cache_status = CacheStatus.HIT
        try:
            record = await self._cache.get_url(short_code)
            if record is None:
                cache_status = CacheStatus.MISS
                record = await self._repository.get_by_code(short_code)
                if record is None:
                    URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=cache_status).inc()
                    raise URLNotFoundError(short_code)

            if record.is_expired(self._clock()):
                await self._expire(record)
                URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED, cache_hit=cache_status).inc()
                raise URLExpiredError(short_code)

            if cache_status is CacheStatus.MISS:
                await self._cache.set_url(record, self._settings.CACHE_TTL)
        finally:
            URL_LOOKUP_DURATION.observe(time.perf_counter() - start_time)

        URL_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
        self._logger.debug(f"Resolved {short_code} ({'cache' if cache_status is CacheStatus.HIT else 'store'})")
        return record

    async def _expire(self, record: URLRecord) -> None:
        # Pinned to the row we read: the code may already belong to a newer URL
        deleted = await self._repository.delete_by_code(record.short_code, record.id)
        if not deleted:
            await self._cache.drop_url(record.short_code)
            self._logger.debug(f"Expired URL {record.short_code} (id={record.id}) was already removed")
            return
        await self._cache.clear(record.short_code)
        URL_EXPIRED_ON_READ_TOTAL.inc()
        self._logger.info(f"Deleted expired URL on read: {record.short_code}")

    # ========================================================================
    # CLICK ACCOUNTING
    # ========================================================================

    async def record_click(self, short_code: str) -> None:
        """Count one click. Never raises; a lost click must not break a redirect."""
        try:
            await self._cache.increment_clicks(short_code)
            if self._clicks is not None:
                self._clicks.enqueue(short_code)
            URL_CLICKS_TOTAL.inc()
            self._logger.debug(f"Incremented click count for: {short_code}")
        except Exception as exc:
            self._logger.error(f"Error incrementing clicks for {short_code}: {exc}")

    # ========================================================================
    # STATISTICS & LISTING
    # ========================================================================

    async def get_url_statistics(self, short_code: str) -> URLStats:
        """Store-only view of a URL; reports expiry without deleting.

        Raises:
            URLNotFoundError: no URL is stored under ``short_code``.
        """
        record = await self._repository.get_by_code(short_code)
        if record is None:
            raise URLNotFoundError(short_code)
        return URLStats(
            short_code=record.short_code,
            long_url=record.long_url,
            clicks=record.clicks,
            created_at=record.created_at,
            expires_at=record.expires_at,
            is_expired=record.is_expired(self._clock()),
        )

    async def list_urls(self, limit: int | None = None, offset: int = 0) -> tuple[list[URLRecord], int, int]:
        """Newest first. Returns ``(records, limit, offset)`` after clamping."""
        if limit is None or limit <= 0:
            limit = self._settings.URL_LIST_DEFAULT_LIMIT
        limit = min(limit, self._settings.URL_LIST_MAX_LIMIT)
        offset = max(offset, 0)
        records = await self._repository.list_urls(limit, offset)
        return records, limit, offset

    def is_expired(self, record: URLRecord) -> bool:
        return record.is_expired(self._clock())
