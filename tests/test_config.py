"""Settings tests: DSN composition and rewriting."""

from swifturl.config import Settings


def test_database_url_composed_from_parts() -> None:
    settings = Settings(DATABASE_URL=None, DB_USER="app", DB_PASSWORD="p@ss", DB_HOST="db", DB_PORT=5433, DB_NAME="links")
    assert settings.database_url == "postgresql+asyncpg://app:p%40ss@db:5433/links"


def test_plain_postgres_dsn_is_rewritten_for_asyncpg() -> None:
    settings = Settings(DATABASE_URL="postgres://u:p@host:5432/db")
    assert settings.database_url == "postgresql+asyncpg://u:p@host:5432/db"


def test_asyncpg_dsn_is_kept() -> None:
    dsn = "postgresql+asyncpg://u:p@host:5432/db"
    assert Settings(DATABASE_URL=dsn).database_url == dsn


def test_redis_url_prefers_explicit_url() -> None:
    assert Settings(REDIS_URL="redis://cache:6380/2").redis_url == "redis://cache:6380/2"


def test_redis_url_composed_with_password() -> None:
    settings = Settings(REDIS_URL=None, REDIS_HOST="cache", REDIS_PORT=6379, REDIS_PASSWORD="secret")
    assert settings.redis_url == "redis://:secret@cache:6379/0"


def test_rate_limit_window_seconds() -> None:
    assert Settings(RATE_LIMIT_WINDOW_MS=1500).rate_limit_window_seconds == 1.5
