"""
Redis access for the coordinator.

Holds per-indexer block stream state:
- {account_id}/{function_name}:block_stream:version   version the stream was last started with
- {account_id}/{function_name}:last_published_block   last block the stream published
- {account_id}/{function_name}:block_stream           buffered blocks awaiting the executor
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis import exceptions as redis_exceptions

from .errors import StoreError
from .models import JobConfig

logger = logging.getLogger(__name__)

# Stream version written for indexers migrated from the V1 pipeline
MIGRATED_STREAM_VERSION = 0


class RedisClient:
    """Thin async wrapper translating Redis errors into StoreError"""

    ALLOWLIST = "allowlist"
    STREAMS = "streams"

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    @classmethod
    async def connect(cls, redis_url: str) -> "RedisClient":
        """
        Connect to Redis and verify the connection.

        Raises:
            StoreError: If Redis cannot be reached
        """
        client = redis.from_url(redis_url, decode_responses=True)
        try:
            await client.ping()
        except redis_exceptions.RedisError as e:
            await client.aclose()
            raise StoreError(f"Failed to connect to Redis at {redis_url}: {e}") from e

        logger.info("Connected to Redis")
        return cls(client)

    async def close(self):
        await self.redis.aclose()

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except redis_exceptions.RedisError as e:
            raise StoreError(f"GET {key} failed: {e}") from e

    async def set(self, key: str, value) -> None:
        try:
            await self.redis.set(key, value)
        except redis_exceptions.RedisError as e:
            raise StoreError(f"SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except redis_exceptions.RedisError as e:
            raise StoreError(f"DEL {key} failed: {e}") from e

    async def srem(self, key: str, member: str) -> None:
        try:
            await self.redis.srem(key, member)
        except redis_exceptions.RedisError as e:
            raise StoreError(f"SREM {key} {member} failed: {e}") from e

    async def _get_int(self, key: str) -> Optional[int]:
        value = await self.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError as e:
            raise StoreError(f"{key} holds a non-integer value: {value!r}") from e

    async def get_stream_version(self, job: JobConfig) -> Optional[int]:
        """Version the block stream was last started with, None if never started"""
        return await self._get_int(job.stream_version_key)

    async def set_stream_version(self, job: JobConfig) -> None:
        await self.set(job.stream_version_key, job.registry_version)

    async def set_migrated_stream_version(self, job: JobConfig) -> None:
        await self.set(job.stream_version_key, MIGRATED_STREAM_VERSION)

    async def get_last_published_block(self, job: JobConfig) -> Optional[int]:
        return await self._get_int(job.last_published_block_key)

    async def clear_block_stream(self, job: JobConfig) -> None:
        """Drop blocks buffered for the executor under the previous version"""
        await self.delete(job.stream_key)
