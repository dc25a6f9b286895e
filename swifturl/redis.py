"""Redis client management for SwiftURL.

This module owns the single process-wide Redis client used for the URL
snapshot cache, the click counters and the rate-limit windows. The
``ServiceManager`` (see ``swifturl.dependencies``) creates it once at startup
and hands it to the components that need it.

Flow Diagram — Redis Lifecycle
=============================
::
    ┌─────────────┐
    │ init_redis() │  (startup)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ REDIS_       │── NO ──► None (cache disabled)
    │ ENABLED?     │
    └──────┬──────┘
           ▼ YES
    ┌─────────────┐
    │ from_url +   │── FAIL ─► log warning, keep the client;
    │ PING         │           it reconnects on a later command
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_redis()│  (shutdown)
    └─────────────┘

Key Behaviours
===============
- The cache is optional: with ``REDIS_ENABLED=false`` the service runs
  store-only.
- An unreachable Redis at startup does not disable the cache. Commands fail
  fast until it comes back and every caller degrades on those failures.
- UTF-8 encoding with decode_responses for string operations.
- Socket timeouts come from settings so a slow Redis cannot stall requests.

Functions:
    init_redis():  Connect once at startup.
    close_redis():  Cleanup function for shutdown.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from swifturl.config import Settings, get_settings

__all__ = ["close_redis", "init_redis"]

settings = get_settings()
logger = logging.getLogger("urlshortener.redis")

redis_client: redis.Redis | None = None


async def init_redis(config: Settings | None = None) -> redis.Redis | None:
    global redis_client
    config = config or settings
    if redis_client is not None or not config.REDIS_ENABLED:
        return redis_client

    client = redis.from_url(
        config.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=config.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    try:
        await client.ping()
        logger.info("Redis connection established")
    except (RedisError, OSError) as exc:
        logger.warning(f"Redis unavailable at startup, cache degraded until it recovers: {exc}")

    redis_client = client
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
