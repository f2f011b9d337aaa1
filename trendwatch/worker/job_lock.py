"""Redis-based lock so a batch job never overlaps itself across processes."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

import redis.asyncio as redis

from trendwatch.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "trendwatch:job:lock:"

# 0 = not found/already released, 1 = deleted, 2 = held by someone else
SAFE_UNLOCK_SCRIPT = """
local lock_value = redis.call('GET', KEYS[1])
if not lock_value then
    return 0
end

local cjson = require('cjson')
local success, data = pcall(cjson.decode, lock_value)
if not success then
    return 2
end

if data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('DEL', KEYS[1])
    return 1
else
    return 2
end
"""


def lock_key(job_type: str) -> str:
    return f"{LOCK_KEY_PREFIX}{job_type}"


class JobLockManager:
    """
    Per-job-type distributed lock.

    Features:
    - SET NX EX acquisition with a TTL so a crashed run cannot hold it forever
    - Token-based ownership check on release (atomic Lua script)
    - Lock info retrieval and forced recovery
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire_lock(
        self,
        job_type: str,
        run_id: str,
        ttl_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Acquire the lock for a job type.

        Args:
            job_type: Job name (ingest, decay, metadata_refresh)
            run_id: Unique run identifier
            ttl_seconds: Expiry in seconds (defaults to settings)

        Returns:
            Token string if acquired, None if another run holds it
        """
        redis_client = await self._get_redis()
        token = uuid4().hex
        lock_value = json.dumps({
            "run_id": run_id,
            "token": token,
            "started_at": datetime.utcnow().isoformat(),
        })

        acquired = await redis_client.set(
            lock_key(job_type),
            lock_value,
            nx=True,
            ex=ttl_seconds or settings.job_lock_ttl_seconds,
        )
        if acquired:
            logger.info(f"Acquired {job_type} lock for run {run_id[:16]}")
            return token

        info = await self.get_lock_info(job_type)
        if info:
            logger.info(f"{job_type} lock already held by run {str(info.get('run_id'))[:16]}")
        return None

    async def safe_unlock(self, job_type: str, run_id: str, token: Optional[str]) -> bool:
        """Release only if this run still owns the lock."""
        if not token:
            logger.warning("Unlock requested without token; refusing (use force_unlock for recovery)")
            return False

        redis_client = await self._get_redis()
        result = await redis_client.eval(SAFE_UNLOCK_SCRIPT, 1, lock_key(job_type), run_id, token)
        if result in (0, 1):
            if result == 1:
                logger.info(f"Released {job_type} lock for run {run_id[:16]}")
            return True
        logger.warning(f"Refused to release {job_type} lock held by another run")
        return False

    async def force_unlock(self, job_type: str) -> bool:
        """Delete the lock without an ownership check (admin recovery)."""
        redis_client = await self._get_redis()
        await redis_client.delete(lock_key(job_type))
        logger.warning(f"Force-cleared {job_type} lock")
        return True

    async def get_lock_info(self, job_type: str) -> Optional[Dict[str, Any]]:
        redis_client = await self._get_redis()
        value = await redis_client.get(lock_key(job_type))
        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"{job_type} lock holds an invalid value: {value}")
            return {"raw": value}


# Global instance
job_lock_manager = JobLockManager()
