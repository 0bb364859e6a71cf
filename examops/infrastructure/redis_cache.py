"""Redis Result Cache — cache-aside store for published results.

Invariants:
    - Values are JSON objects; every write carries a TTL (SET ... EX)
    - A missing, expired or undecodable value is a miss (None), never an error
    - Connection/timeout failures map to CacheUnavailableError (transient)

Design Decisions:
    - redis.asyncio client shared per process, created in the FastAPI lifespan
"""

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from examops.core.errors import CacheUnavailableError

logger = logging.getLogger(__name__)


def create_redis_client(url: str, max_connections: int = 50) -> redis.Redis:
    """Build the shared async Redis client (lazy connect, pooled)."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


class RedisResultCache:
    """ResultCache over Redis strings."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    async def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl_seconds)
        except RedisError as e:
            logger.warning(f"Cache set error: {e}")
            raise CacheUnavailableError("set")

    async def get(self, key: str) -> dict | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            logger.warning(f"Cache get error: {e}")
            raise CacheUnavailableError("get")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding undecodable cache value at {key}")
            return None

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
