"""URL cache tests against the in-memory Redis."""

import pytest

from swifturl.cache import URLCache, clicks_key, url_key
from swifturl.schemas import URLRecord


def make_record(short_code: str = "abc123") -> URLRecord:
    return URLRecord(id=1, long_url="https://example.com", short_code=short_code, clicks=0)


@pytest.mark.asyncio
async def test_set_then_get(cache: URLCache) -> None:
    record = make_record()
    assert await cache.set_url(record) is True
    cached = await cache.get_url("abc123")
    assert cached == record


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(cache: URLCache, clock) -> None:
    await cache.set_url(make_record(), ttl=10)
    clock.advance(11)
    assert await cache.get_url("abc123") is None


@pytest.mark.asyncio
async def test_unreadable_entry_is_a_miss(cache: URLCache, fake_redis) -> None:
    fake_redis.data[url_key("abc123")] = "{not json"
    assert await cache.get_url("abc123") is None


@pytest.mark.asyncio
async def test_clear_removes_snapshot_and_counter(cache: URLCache, fake_redis) -> None:
    await cache.set_url(make_record())
    await cache.increment_clicks("abc123")
    await cache.clear("abc123")
    assert url_key("abc123") not in fake_redis.data
    assert clicks_key("abc123") not in fake_redis.data


@pytest.mark.asyncio
async def test_drop_url_keeps_click_counter(cache: URLCache, fake_redis) -> None:
    await cache.set_url(make_record())
    await cache.increment_clicks("abc123")
    assert await cache.drop_url("abc123") is True
    assert url_key("abc123") not in fake_redis.data
    assert await cache.get_clicks("abc123") == 1


@pytest.mark.asyncio
async def test_click_counter_gets_ttl_on_first_increment(cache: URLCache, fake_redis, clock) -> None:
    assert await cache.increment_clicks("abc123") == 1
    deadline = fake_redis.expiry_ms[clicks_key("abc123")]
    assert deadline == clock.millis() + 86400 * 1000

    clock.advance(5)
    assert await cache.increment_clicks("abc123") == 2
    assert fake_redis.expiry_ms[clicks_key("abc123")] == deadline
    assert await cache.get_clicks("abc123") == 2


@pytest.mark.asyncio
async def test_disabled_cache_is_a_no_op() -> None:
    cache = URLCache(None)
    assert cache.enabled is False
    assert await cache.set_url(make_record()) is False
    assert await cache.get_url("abc123") is None
    assert await cache.drop_url("abc123") is False
    assert await cache.increment_clicks("abc123") is None
    assert await cache.get_clicks("abc123") == 0
    assert await cache.ping() is False


@pytest.mark.asyncio
async def test_errors_degrade_silently(cache: URLCache, fake_redis) -> None:
    fake_redis.broken = True
    assert await cache.set_url(make_record()) is False
    assert await cache.get_url("abc123") is None
    assert await cache.clear("abc123") is False
    assert await cache.drop_url("abc123") is False
    assert await cache.increment_clicks("abc123") is None
    assert await cache.ping() is False
