"""Tests for the Redis job lock."""

import pytest
import redis.asyncio as redis

from trendwatch.config import settings
from trendwatch.worker.job_lock import JobLockManager


async def _redis_available() -> bool:
    try:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        await client.ping()
        await client.aclose()
        return True
    except Exception:
        return False


@pytest.mark.asyncio
async def test_lock_acquire_and_release():
    if not await _redis_available():
        pytest.skip("Redis not available")

    manager = JobLockManager(redis_url=settings.redis_url)
    await manager.force_unlock("test_decay")

    token = await manager.acquire_lock("test_decay", "run_a", ttl_seconds=30)
    assert token is not None

    info = await manager.get_lock_info("test_decay")
    assert info.get("run_id") == "run_a"
    assert info.get("token") == token

    assert await manager.acquire_lock("test_decay", "run_b", ttl_seconds=30) is None

    assert await manager.safe_unlock("test_decay", "run_a", token) is True
    assert await manager.get_lock_info("test_decay") is None
    await manager.close()


@pytest.mark.asyncio
async def test_unlock_with_wrong_token_refused():
    if not await _redis_available():
        pytest.skip("Redis not available")

    manager = JobLockManager(redis_url=settings.redis_url)
    await manager.force_unlock("test_ingest")

    token = await manager.acquire_lock("test_ingest", "run_a", ttl_seconds=30)
    assert token is not None

    assert await manager.safe_unlock("test_ingest", "run_a", "bad_token") is False
    assert await manager.safe_unlock("test_ingest", "run_a", None) is False

    await manager.force_unlock("test_ingest")
    await manager.close()
