"""Database configuration and session management for SwiftURL.

This module provides SQLAlchemy async engine setup, session management,
and database lifecycle operations using PostgreSQL as the durable store.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐        ┌──────────────┐
    │  Request    │        │  Background  │
    │  handler    │        │  worker      │
    └──────┬──────┘        └──────┬───────┘
           ▼                      ▼
    ┌─────────────┐        ┌──────────────┐
    │ get_db()     │        │ session_     │
    │ dependency  │        │ scope()      │
    └──────┬──────┘        └──────┬───────┘
           └──────────┬───────────┘
                      ▼
               ┌─────────────┐
               │ async_      │
               │ session()   │
               └──────┬──────┘
                      ▼
               ┌─────────────┐
               │ Auto-close   │
               │ (finally)    │
               └─────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates tables and indexes

**Step 2 — Use in FastAPI endpoints**::
    @app.get("/urls")
    async def get_urls(db: AsyncSession = Depends(get_db)):
        ...

**Step 3 — Use outside a request**::
    async with session_scope() as session:
        ...

**Step 4 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Request sessions are automatically closed after each request.
- Background workers open their own short-lived sessions.
- Connection pooling and the connect timeout come from settings.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    get_db():  FastAPI dependency for database sessions.
    session_scope():  Context manager for sessions outside a request.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from swifturl.config import get_settings

__all__ = ["Base", "async_session", "close_db", "engine", "get_db", "init_db", "session_scope"]

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=(settings.APP_ENV == "development" and settings.LOG_LEVEL == "DEBUG"),
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    connect_args={"timeout": settings.DB_CONNECT_TIMEOUT_SECONDS},
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    # Import registers the models on Base.metadata
    from swifturl import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
