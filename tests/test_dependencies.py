"""Service manager lifecycle tests."""

import pytest

from swifturl.dependencies import ServiceManager


@pytest.mark.asyncio
async def test_service_manager_lifecycle(settings, fake_redis, repository_factory) -> None:
    manager = ServiceManager()
    await manager.initialize(settings=settings, redis_client=fake_redis, repository_factory=repository_factory)
    try:
        assert manager is ServiceManager()
        assert manager.cache.enabled
        assert manager.click_recorder.running
    finally:
        await manager.cleanup()
    assert not manager.click_recorder.running


@pytest.mark.asyncio
async def test_service_manager_without_redis(settings, repository_factory) -> None:
    manager = ServiceManager()
    await manager.initialize(settings=settings, repository_factory=repository_factory, start_background=False)
    try:
        assert manager.redis is None
        assert manager.cache.enabled is False
        assert not manager.click_recorder.running
    finally:
        await manager.cleanup()
