"""Fixed-window rate limiter tests."""

import pytest

from swifturl.rate_limit import RateLimiter


@pytest.mark.asyncio
async def test_requests_over_the_limit_are_rejected(fake_redis, logger) -> None:
    limiter = RateLimiter(fake_redis, logger)
    results = [await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert results[3].reset_time is not None


@pytest.mark.asyncio
async def test_window_resets_after_expiry(fake_redis, clock, logger) -> None:
    limiter = RateLimiter(fake_redis, logger)
    for _ in range(3):
        await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3)
    assert not (await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3)).allowed

    clock.advance(1.001)
    result = await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3)
    assert result.allowed
    assert result.remaining == 2


@pytest.mark.asyncio
async def test_clients_are_counted_separately(fake_redis, logger) -> None:
    limiter = RateLimiter(fake_redis, logger)
    await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=1)
    result = await limiter.check_rate_limit("10.0.0.2", window_ms=1000, max_requests=1)
    assert result.allowed


@pytest.mark.asyncio
async def test_window_starts_on_first_request_only(fake_redis, clock, logger) -> None:
    limiter = RateLimiter(fake_redis, logger)
    await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=5)
    deadline = fake_redis.expiry_ms["rate_limit:10.0.0.1"]
    clock.advance(0.5)
    await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=5)
    assert fake_redis.expiry_ms["rate_limit:10.0.0.1"] == deadline


@pytest.mark.asyncio
async def test_fails_open_without_redis(logger) -> None:
    limiter = RateLimiter(None, logger)
    result = await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3)
    assert result.allowed
    assert result.remaining == 3


@pytest.mark.asyncio
async def test_fails_open_on_redis_error(fake_redis, logger) -> None:
    fake_redis.broken = True
    limiter = RateLimiter(fake_redis, logger)
    for _ in range(5):
        result = await limiter.check_rate_limit("10.0.0.1", window_ms=1000, max_requests=3)
        assert result.allowed
