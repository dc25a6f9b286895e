"""Durable store access for short URLs.

All SQL the service needs lives here so the lookup, creation and sweeping
logic can be exercised against an in-memory store in tests.

How to Use
===========
**Inside a request**::
    repository = URLRepository(db)
    record = await repository.get_by_code("abc123")

**Outside a request (background work)**::
    async with repository_scope() as repository:
        await repository.increment_clicks("abc123")

Key Behaviours
===============
- Every mutating call commits its own transaction.
- A violation of the short_code unique index on insert is rolled back and
  surfaced as ``ShortCodeConflict``; any other integrity error is rolled
  back and re-raised. The pre-insert existence check is only advisory.
- ``delete_by_code`` can be pinned to a row id so a stale reader never
  deletes a newer URL that reused the code.
- ``delete_expired`` removes and reports expired codes in one statement, so
  the set of codes cleared from the cache is exactly the set deleted.
"""

import datetime
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from prometheus_client import Counter
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swifturl.database import session_scope
from swifturl.exceptions import ShortCodeConflict
from swifturl.models import URL
from swifturl.schemas import URLRecord

__all__ = ["RepositoryFactory", "URLRepository", "UrlCounts", "repository_scope"]

SHORT_CODE_INDEX = "ix_urls_short_code"

DATABASE_READS_TOTAL = Counter(
    "swifturl_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "swifturl_database_writes_total",
    "Total database write operations",
)


def _is_short_code_violation(exc: IntegrityError) -> bool:
    # asyncpg reports unique_violation as SQLSTATE 23505 and names the index
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate is not None and sqlstate != "23505":
        return False
    return SHORT_CODE_INDEX in str(exc.orig)


@dataclass(frozen=True)
class UrlCounts:
    total_urls: int
    urls_with_expiry: int
    expired_urls: int


class URLRepository:
    def __init__(self, session: AsyncSession):
        self._db = session

    async def exists(self, short_code: str) -> bool:
        result = await self._db.execute(select(URL.id).where(URL.short_code == short_code))
        DATABASE_READS_TOTAL.inc()
        return result.scalar_one_or_none() is not None

    async def get_by_code(self, short_code: str) -> URLRecord | None:
        result = await self._db.execute(select(URL).where(URL.short_code == short_code))
        DATABASE_READS_TOTAL.inc()
        url = result.scalar_one_or_none()
        return URLRecord.model_validate(url) if url is not None else None

    async def insert(
        self,
        long_url: str,
        short_code: str,
        expires_at: datetime.datetime | None = None,
    ) -> URLRecord:
        url = URL(long_url=long_url, short_code=short_code, expires_at=expires_at)
        self._db.add(url)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            if not _is_short_code_violation(exc):
                raise
            raise ShortCodeConflict(short_code) from exc
        DATABASE_WRITES_TOTAL.inc()
        await self._db.refresh(url)
        return URLRecord.model_validate(url)

    async def delete_by_code(self, short_code: str, url_id: int | None = None) -> bool:
        statement = delete(URL).where(URL.short_code == short_code)
        if url_id is not None:
            statement = statement.where(URL.id == url_id)
        result = await self._db.execute(statement)
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        return bool(result.rowcount)

    async def increment_clicks(self, short_code: str, delta: int = 1) -> bool:
        result = await self._db.execute(
            update(URL).where(URL.short_code == short_code).values(clicks=URL.clicks + delta)
        )
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        return bool(result.rowcount)

    async def delete_expired(self, now: datetime.datetime) -> list[str]:
        result = await self._db.execute(
            delete(URL).where(URL.expires_at.is_not(None), URL.expires_at < now).returning(URL.short_code)
        )
        codes = list(result.scalars().all())
        await self._db.commit()
        DATABASE_WRITES_TOTAL.inc()
        return codes

    async def list_urls(self, limit: int, offset: int) -> list[URLRecord]:
        result = await self._db.execute(
            select(URL).order_by(URL.created_at.desc(), URL.id.desc()).limit(limit).offset(offset)
        )
        DATABASE_READS_TOTAL.inc()
        return [URLRecord.model_validate(url) for url in result.scalars().all()]

    async def count_stats(self, now: datetime.datetime) -> UrlCounts:
        result = await self._db.execute(
            select(
                func.count(URL.id),
                func.count(URL.expires_at),
                func.count(URL.id).filter(URL.expires_at < now),
            )
        )
        DATABASE_READS_TOTAL.inc()
        total, with_expiry, expired = result.one()
        return UrlCounts(total_urls=total, urls_with_expiry=with_expiry, expired_urls=expired)


RepositoryFactory = Callable[[], AbstractAsyncContextManager[URLRepository]]


@asynccontextmanager
async def repository_scope() -> AsyncIterator[URLRepository]:
    async with session_scope() as session:
        yield URLRepository(session)
