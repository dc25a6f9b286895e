"""Shared pytest fixtures: in-memory store, in-memory Redis and an API client.

The fakes stand in for PostgreSQL and Redis so the suite runs without either
service. Both share one controllable clock so expiry and TTL behaviour can be
driven deterministically.
"""

import asyncio
import datetime
import logging
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from swifturl.cache import URLCache
from swifturl.cleanup import ExpirationSweeper
from swifturl.clicks import ClickRecorder
from swifturl.config import Settings
from swifturl.database import get_db
from swifturl.dependencies import get_service_manager, get_url_service
from swifturl.exceptions import ShortCodeConflict
from swifturl.main import app
from swifturl.repository import UrlCounts
from swifturl.schemas import URLRecord, as_utc
from swifturl.url_service import URLShorteningService

# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    def __init__(self, start: datetime.datetime | None = None):
        self.current = start or datetime.datetime.now(datetime.timezone.utc)

    def now(self) -> datetime.datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += datetime.timedelta(seconds=seconds)

    def millis(self) -> int:
        return int(self.current.timestamp() * 1000)


# ============================================================================
# IN-MEMORY STORE
# ============================================================================


class FakeRepository:
    """Mimics URLRepository, including the short_code unique constraint."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.rows: dict[str, URLRecord] = {}
        self.calls: Counter = Counter()
        self.fail_increments = False
        self._next_id = 1

    async def exists(self, short_code: str) -> bool:
        self.calls["exists"] += 1
        await asyncio.sleep(0)
        return short_code in self.rows

    async def get_by_code(self, short_code: str) -> URLRecord | None:
        self.calls["get_by_code"] += 1
        await asyncio.sleep(0)
        record = self.rows.get(short_code)
        return record.model_copy() if record is not None else None

    async def insert(
        self,
        long_url: str,
        short_code: str,
        expires_at: datetime.datetime | None = None,
    ) -> URLRecord:
        self.calls["insert"] += 1
        await asyncio.sleep(0)
        if short_code in self.rows:
            raise ShortCodeConflict(short_code)
        record = URLRecord(
            id=self._next_id,
            long_url=long_url,
            short_code=short_code,
            clicks=0,
            created_at=self.clock.now(),
            expires_at=expires_at,
        )
        self._next_id += 1
        self.rows[short_code] = record
        return record.model_copy()

    async def delete_by_code(self, short_code: str, url_id: int | None = None) -> bool:
        self.calls["delete_by_code"] += 1
        record = self.rows.get(short_code)
        if record is None or (url_id is not None and record.id != url_id):
            return False
        del self.rows[short_code]
        return True

    async def increment_clicks(self, short_code: str, delta: int = 1) -> bool:
        self.calls["increment_clicks"] += 1
        await asyncio.sleep(0)
        if self.fail_increments:
            raise OSError("connection refused")
        record = self.rows.get(short_code)
        if record is None:
            return False
        record.clicks += delta
        return True

    async def delete_expired(self, now: datetime.datetime) -> list[str]:
        self.calls["delete_expired"] += 1
        expired = [
            code for code, record in self.rows.items()
            if record.expires_at is not None and as_utc(record.expires_at) < now
        ]
        for code in expired:
            del self.rows[code]
        return expired

    async def list_urls(self, limit: int, offset: int) -> list[URLRecord]:
        self.calls["list_urls"] += 1
        ordered = sorted(self.rows.values(), key=lambda r: (r.created_at, r.id), reverse=True)
        return [record.model_copy() for record in ordered[offset:offset + limit]]

    async def count_stats(self, now: datetime.datetime) -> UrlCounts:
        records = list(self.rows.values())
        return UrlCounts(
            total_urls=len(records),
            urls_with_expiry=sum(1 for r in records if r.expires_at is not None),
            expired_urls=sum(1 for r in records if r.is_expired(now)),
        )


def repository_factory_for(repository: FakeRepository):
    @asynccontextmanager
    async def factory() -> AsyncIterator[FakeRepository]:
        yield repository

    return factory


# ============================================================================
# IN-MEMORY REDIS
# ============================================================================


class FakeRedis:
    """The subset of redis.asyncio.Redis the service uses, with TTLs on ``clock``."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: dict[str, str] = {}
        self.expiry_ms: dict[str, int] = {}
        self.calls: Counter = Counter()
        self.broken = False

    def _check(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.broken:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str) -> None:
        deadline = self.expiry_ms.get(key)
        if deadline is not None and self.clock.millis() >= deadline:
            self.data.pop(key, None)
            self.expiry_ms.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._check("get")
        self._purge(key)
        return self.data.get(key)

    async def setex(self, key: str, seconds: int, value: str) -> bool:
        self._check("setex")
        self.data[key] = value
        self.expiry_ms[key] = self.clock.millis() + int(seconds * 1000)
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry_ms.pop(key, None)
        return removed

    async def incr(self, key: str) -> int:
        self._check("incr")
        self._purge(key)
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        return await self.pexpire(key, int(seconds * 1000))

    async def pexpire(self, key: str, milliseconds: int) -> bool:
        self._check("pexpire")
        self._purge(key)
        if key not in self.data:
            return False
        self.expiry_ms[key] = self.clock.millis() + milliseconds
        return True

    async def pttl(self, key: str) -> int:
        self._check("pttl")
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expiry_ms.get(key)
        if deadline is None:
            return -1
        return deadline - self.clock.millis()

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        return None


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        BASE_URL="http://sho.rt",
        REDIS_ENABLED=False,
        CLEANUP_ENABLED=False,
        RATE_LIMIT_ENABLED=True,
        RATE_LIMIT_WINDOW_MS=60000,
        RATE_LIMIT_MAX_REQUESTS=1000,
    )


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("urlshortener.tests")


@pytest.fixture
def repository(clock: FakeClock) -> FakeRepository:
    return FakeRepository(clock)


@pytest.fixture
def repository_factory(repository: FakeRepository):
    return repository_factory_for(repository)


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis: FakeRedis, logger: logging.Logger) -> URLCache:
    return URLCache(fake_redis, ttl=3600, click_ttl=86400, logger=logger)


@pytest_asyncio.fixture
async def click_recorder(repository: FakeRepository, logger: logging.Logger) -> AsyncGenerator[ClickRecorder, None]:
    recorder = ClickRecorder(repository_factory_for(repository), logger=logger, max_size=100)
    recorder.start()
    yield recorder
    await recorder.stop(timeout=1.0)


@pytest.fixture
def sweeper(repository: FakeRepository, cache: URLCache, clock: FakeClock, logger: logging.Logger) -> ExpirationSweeper:
    return ExpirationSweeper(
        repository_factory_for(repository),
        cache,
        logger=logger,
        interval_seconds=3600,
        clock=clock.now,
    )


# ============================================================================
# API FIXTURES
# ============================================================================


class FakeSession:
    def __init__(self):
        self.healthy = True

    async def execute(self, statement):
        if not self.healthy:
            raise OSError("connection refused")
        return None


@pytest.fixture
def db_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def manager(
    settings: Settings,
    fake_redis: FakeRedis,
    cache: URLCache,
    click_recorder: ClickRecorder,
    logger: logging.Logger,
) -> SimpleNamespace:
    """Stands in for the process-wide ServiceManager."""
    return SimpleNamespace(
        settings=settings,
        logger=logger,
        redis=fake_redis,
        cache=cache,
        click_recorder=click_recorder,
    )


@pytest_asyncio.fixture
async def client(
    manager: SimpleNamespace,
    db_session: FakeSession,
    repository: FakeRepository,
    clock: FakeClock,
) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[FakeSession, None]:
        yield db_session

    async def override_get_service_manager() -> SimpleNamespace:
        return manager

    def override_get_url_service() -> URLShorteningService:
        return URLShorteningService(
            repository=repository,
            cache=manager.cache,
            clicks=manager.click_recorder,
            settings=manager.settings,
            logger=manager.logger,
            clock=clock.now,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_service_manager] = override_get_service_manager
    app.dependency_overrides[get_url_service] = override_get_url_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
