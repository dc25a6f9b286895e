"""Fixed-window, per-client rate limiting backed by Redis.

Flow Diagram — check_rate_limit()
=================================
::
    INCR rate_limit:<client>
        │
        ├─ count == 1 ─► PEXPIRE key window_ms   (window opens)
        │
        ├─ count <= max ─► allowed, remaining = max - count
        │
        └─ count  > max ─► rejected, remaining = 0,
                           reset_time = now + PTTL

Key Behaviours
===============
- INCR is atomic, so concurrent requests from one client never both see the
  last free slot.
- Fail-open: with no Redis, or on any Redis error, every request is allowed.
- The window resets when the key expires (fixed window, not sliding).
"""

import logging
import time
from dataclasses import dataclass

import redis.asyncio as redis
from fastapi import Request

from swifturl.cache import CACHE_ERRORS

__all__ = ["RateLimitResult", "RateLimiter", "client_identifier"]


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int | None = None  # epoch milliseconds


class RateLimiter:
    def __init__(self, client: redis.Redis | None, logger: logging.Logger | None = None):
        self._client = client
        self._logger = logger or logging.getLogger("urlshortener.rate_limit")

    async def check_rate_limit(self, client_id: str, window_ms: int, max_requests: int) -> RateLimitResult:
        if self._client is None:
            return RateLimitResult(allowed=True, remaining=max_requests)

        key = f"rate_limit:{client_id}"
        try:
            count = int(await self._client.incr(key))
            if count == 1:
                await self._client.pexpire(key, window_ms)
            if count <= max_requests:
                return RateLimitResult(allowed=True, remaining=max_requests - count)

            ttl_ms = int(await self._client.pttl(key))
            if ttl_ms < 0:
                # Key lost its expiry; start the window over
                await self._client.pexpire(key, window_ms)
                ttl_ms = window_ms
        except CACHE_ERRORS as exc:
            self._logger.warning(f"Rate limit check error, allowing request: {exc}")
            return RateLimitResult(allowed=True, remaining=max_requests)

        return RateLimitResult(allowed=False, remaining=0, reset_time=int(time.time() * 1000) + ttl_ms)


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"

