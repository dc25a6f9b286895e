"""Cache-aside helpers over Redis.

``URLCache`` wraps the optional Redis client with the three key families the
service uses. The cache is an accelerator only: a missing client or any Redis
failure degrades to a miss or a no-op and is logged, never raised.

Key Namespace
=============
::
    url:<shortCode>     → URLRecord JSON       TTL = CACHE_TTL (3600s)
    clicks:<shortCode>  → integer string       TTL = 86400s, set on first INCR

How to Use
===========
**Step 1 — Build from the shared client**::
    cache = URLCache(await init_redis(settings), ttl=settings.CACHE_TTL, logger=logger)

**Step 2 — Read / write snapshots**::
    record = await cache.get_url("abc123")      # None on miss or error
    await cache.set_url(record)                 # False on error

**Step 3 — Forget a deleted URL**::
    await cache.clear("abc123")                 # drops url: and clicks: keys
"""

import asyncio
import logging

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import ValidationError
from redis.exceptions import RedisError

from swifturl.schemas import URLRecord

__all__ = ["CACHE_ERRORS", "DEFAULT_CACHE_TTL_SECONDS", "DEFAULT_CLICK_TTL_SECONDS", "URLCache"]

DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_CLICK_TTL_SECONDS = 86400

# Anything a flaky or absent Redis can throw at us
CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)

REDIS_OPERATIONS_TOTAL = Counter(
    "swifturl_redis_operations_total",
    "Total Redis operations",
)
REDIS_ERRORS_TOTAL = Counter(
    "swifturl_redis_errors_total",
    "Redis operations that failed and were degraded",
    ["operation"],
)


def url_key(short_code: str) -> str:
    return f"url:{short_code}"


def clicks_key(short_code: str) -> str:
    return f"clicks:{short_code}"


class URLCache:
    def __init__(
        self,
        client: redis.Redis | None,
        ttl: int = DEFAULT_CACHE_TTL_SECONDS,
        click_ttl: int = DEFAULT_CLICK_TTL_SECONDS,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._client = client
        self._ttl = ttl
        self._click_ttl = click_ttl
        self._logger = logger or logging.getLogger("urlshortener.cache")

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def get_url(self, short_code: str) -> URLRecord | None:
        if self._client is None:
            return None
        try:
            cached = await self._client.get(url_key(short_code))
            REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("get", short_code, exc)
            return None
        if not cached:
            return None
        try:
            return URLRecord.model_validate_json(cached)
        except ValidationError as exc:
            self._logger.warning(f"Discarding unreadable cache entry for {short_code}: {exc}")
            return None

    async def set_url(self, record: URLRecord, ttl: int | None = None) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.setex(url_key(record.short_code), ttl or self._ttl, record.model_dump_json())
            REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("set", record.short_code, exc)
            return False
        return True

    async def clear(self, short_code: str) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.delete(url_key(short_code), clicks_key(short_code))
            REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("delete", short_code, exc)
            return False
        return True

    async def drop_url(self, short_code: str) -> bool:
        """Forget only the snapshot, leaving the click counter alone."""
        if self._client is None:
            return False
        try:
            await self._client.delete(url_key(short_code))
            REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("delete", short_code, exc)
            return False
        return True

    async def increment_clicks(self, short_code: str) -> int | None:
        if self._client is None:
            return None
        key = clicks_key(short_code)
        try:
            count = await self._client.incr(key)
            REDIS_OPERATIONS_TOTAL.inc()
            # TTL on first increment so idle counters age out
            if count == 1:
                await self._client.expire(key, self._click_ttl)
                REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("incr", short_code, exc)
            return None
        return int(count)

    async def get_clicks(self, short_code: str) -> int:
        if self._client is None:
            return 0
        try:
            value = await self._client.get(clicks_key(short_code))
            REDIS_OPERATIONS_TOTAL.inc()
        except CACHE_ERRORS as exc:
            self._degrade("get", short_code, exc)
            return 0
        return int(value) if value else 0

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except CACHE_ERRORS as exc:
            self._degrade("ping", "-", exc)
            return False

    def _degrade(self, operation: str, short_code: str, exc: BaseException) -> None:
        REDIS_ERRORS_TOTAL.labels(operation=operation).inc()
        self._logger.warning(f"Redis {operation} failed for {short_code}, continuing without cache: {exc}")
