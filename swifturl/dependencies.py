"""Dependency injection with a singleton service manager.

This module provides a centralized way to inject database and cache dependencies
with consistent naming across all API endpoints, using a singleton pattern for
the resources that live as long as the process.

Resource Ownership
==================
::
    ServiceManager (process-wide, initialize() at startup, cleanup() at shutdown)
    ├─ settings
    ├─ logger            "urlshortener"
    ├─ redis             redis.asyncio.Redis | None
    ├─ cache             URLCache over redis
    ├─ click_recorder    ClickRecorder (background worker)
    └─ sweeper           ExpirationSweeper (background loop)

    RequestContext (per request)
    ├─ database          AsyncSession
    └─ request_id, client_ip, user_agent, start_time
"""

import datetime
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request, Response
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from swifturl.cache import URLCache
from swifturl.cleanup import ExpirationSweeper
from swifturl.clicks import ClickRecorder
from swifturl.config import Settings, get_settings
from swifturl.database import get_db
from swifturl.exceptions import RateLimitExceededError
from swifturl.rate_limit import RateLimiter, RateLimitResult, client_identifier
from swifturl.redis import close_redis, init_redis
from swifturl.repository import RepositoryFactory, repository_scope
from swifturl.url_service import URLShorteningService

__all__ = [
    "RequestContext",
    "ServiceManager",
    "enforce_rate_limit",
    "get_rate_limiter",
    "get_request_context",
    "get_service_manager",
    "get_url_service",
]


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Holds everything that must not be created per request: the Redis client,
    the cache wrapper, the click recorder and the expiration sweeper.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(
        self,
        settings: Settings | None = None,
        redis_client: redis.Redis | None = None,
        repository_factory: RepositoryFactory = repository_scope,
        start_background: bool = True,
    ) -> None:
        """Initialize shared resources once at startup.

        ``redis_client`` and ``repository_factory`` are injectable so tests can
        run the whole app against in-memory stand-ins.
        """
        if self._initialized:
            return
        self.settings = settings or get_settings()
        self.logger = self._setup_logger()
        self.redis = redis_client if redis_client is not None else await init_redis(self.settings)
        self.cache = URLCache(
            self.redis,
            ttl=self.settings.CACHE_TTL,
            click_ttl=self.settings.CLICK_COUNTER_TTL_SECONDS,
            logger=self.logger.getChild("cache"),
        )
        self.click_recorder = ClickRecorder(
            repository_factory,
            logger=self.logger.getChild("clicks"),
            max_size=self.settings.CLICK_QUEUE_MAX_SIZE,
        )
        self.sweeper = ExpirationSweeper(
            repository_factory,
            self.cache,
            logger=self.logger.getChild("cleanup"),
            interval_seconds=self.settings.CLEANUP_INTERVAL_SECONDS,
        )
        if start_background:
            self.click_recorder.start()
            if self.settings.CLEANUP_ENABLED:
                self.sweeper.start()
        self._initialized = True
        self.logger.info(
            f"Service manager ready (cache {'enabled' if self.cache.enabled else 'disabled'})"
        )

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("urlshortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        await self.sweeper.stop()
        await self.click_recorder.stop(self.settings.CLICK_SHUTDOWN_TIMEOUT_SECONDS)
        await close_redis()
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and access to shared resources.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def cache(self) -> URLCache:
        return self.service_manager.cache

    @property
    def click_recorder(self) -> ClickRecorder:
        return self.service_manager.click_recorder

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        database=db,
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_identifier(request),
    )


def get_url_service(ctx: RequestContext = Depends(get_request_context)) -> URLShorteningService:
    return URLShorteningService.from_context(ctx)


# ============================================================================
# RATE LIMITING
# ============================================================================

RATE_LIMITED_REQUESTS_TOTAL = Counter(
    "swifturl_rate_limited_requests_total",
    "Requests rejected by the rate limiter",
)


def get_rate_limiter(manager: ServiceManager = Depends(get_service_manager)) -> RateLimiter:
    return RateLimiter(manager.redis, manager.logger.getChild("rate_limit"))


async def enforce_rate_limit(
    request: Request,
    response: Response,
    manager: ServiceManager = Depends(get_service_manager),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitResult | None:
    """Guard for the /api routes; fails open when Redis is unavailable."""
    settings = manager.settings
    if not settings.RATE_LIMIT_ENABLED:
        return None

    window_ms = settings.RATE_LIMIT_WINDOW_MS
    max_requests = settings.RATE_LIMIT_MAX_REQUESTS
    client_id = client_identifier(request)
    result = await limiter.check_rate_limit(client_id, window_ms, max_requests)

    headers = {
        "X-RateLimit-Limit": str(max_requests),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Window": str(window_ms),
    }

    if not result.allowed:
        RATE_LIMITED_REQUESTS_TOTAL.inc()
        manager.logger.warning(f"Rate limit exceeded for IP: {client_id}")
        reset_ms = result.reset_time or int(time.time() * 1000) + window_ms
        headers["X-RateLimit-Reset"] = datetime.datetime.fromtimestamp(
            reset_ms / 1000, tz=datetime.timezone.utc
        ).isoformat()
        retry_after = max(1, math.ceil((reset_ms - time.time() * 1000) / 1000))
        raise RateLimitExceededError(max_requests, window_ms, retry_after, headers=headers)

    response.headers.update(headers)
    return result
