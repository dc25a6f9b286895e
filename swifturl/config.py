"""Configuration management for the SwiftURL shortener.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from swifturl.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.database_url

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- ``DATABASE_URL`` wins over the discrete ``DB_*`` variables when set;
  ``REDIS_URL`` wins over ``REDIS_HOST``/``REDIS_PORT``/``REDIS_PASSWORD``.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache
from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "swifturl"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:8000"

    # PostgreSQL: either a full DSN or the discrete parts below
    DATABASE_URL: str | None = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "swifturl"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_CONNECT_TIMEOUT_SECONDS: float = 2.0

    # Redis: either a full URL or host/port/password
    REDIS_ENABLED: bool = True
    REDIS_URL: str | None = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 1.0

    # Cache lifetimes
    CACHE_TTL: int = 3600
    CLICK_COUNTER_TTL_SECONDS: int = 86400

    # Short codes
    SHORT_CODE_LENGTH: int = 6

    # Fixed-window rate limiting for /api routes
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_MS: int = 60000
    RATE_LIMIT_MAX_REQUESTS: int = 10

    # Expiration sweeper
    CLEANUP_ENABLED: bool = True
    CLEANUP_INTERVAL_SECONDS: int = 3600

    # Background click recorder
    CLICK_QUEUE_MAX_SIZE: int = 10000
    CLICK_SHUTDOWN_TIMEOUT_SECONDS: float = 5.0

    # Listing
    URL_LIST_DEFAULT_LIMIT: int = 50
    URL_LIST_MAX_LIMIT: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            # Hosted providers hand out plain postgres:// DSNs
            for prefix in ("postgres://", "postgresql://"):
                if self.DATABASE_URL.startswith(prefix):
                    return "postgresql+asyncpg://" + self.DATABASE_URL[len(prefix):]
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{quote(self.DB_USER)}:{quote(self.DB_PASSWORD)}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_URL:
            return self.REDIS_URL
        auth = f":{quote(self.REDIS_PASSWORD)}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.RATE_LIMIT_WINDOW_MS / 1000


@lru_cache()
def get_settings() -> Settings:
    return Settings()
