"""Redis cache for embedding vectors."""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import redis.asyncio as redis

from docchat.core.config import Settings
from docchat.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheService:
    """Stores JSON-encoded vectors in Redis, many keys per round trip."""

    def __init__(self, settings: Settings, client: Optional[redis.Redis] = None) -> None:
        """
        Initialize the cache service.

        Args:
            settings: Application settings.
            client: Pre-built Redis client, mainly for tests.
        """
        self.settings = settings
        self.client = client
        self.ttl = settings.cache_ttl

    async def connect(self) -> None:
        """Connect to Redis."""
        try:
            if self.client is None:
                self.client = redis.from_url(
                    self.settings.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5.0,
                )
            await self.client.ping()
        except Exception as e:
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    @staticmethod
    def _decode(value: Optional[str]) -> Optional[Any]:
        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None

    async def get_many(self, keys: Sequence[str]) -> List[Optional[Any]]:
        """
        Fetch several JSON values with one MGET.

        Args:
            keys: Cache keys.

        Returns:
            One entry per key; misses, corrupt entries and an unreachable
            Redis all read as None.
        """
        if not self.client or not keys:
            return [None] * len(keys)
        try:
            values = await self.client.mget(list(keys))
        except Exception as e:
            logger.warning(f"Cache read failed for {len(keys)} keys: {str(e)}")
            return [None] * len(keys)
        return [self._decode(value) for value in values]

    async def set_many(self, items: Dict[str, Any], ttl: Optional[int] = None) -> None:
        """
        Store JSON values under a shared TTL in one pipeline.

        Args:
            items: Mapping of cache key to value.
            ttl: Time to live in seconds.

        Raises:
            CacheError: If the write fails.
        """
        if not self.client or not items:
            return
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in items.items():
                    pipe.setex(key, ttl or self.ttl, json.dumps(value))
                await pipe.execute()
        except Exception as e:
            raise CacheError(f"Failed to write {len(items)} cache entries: {str(e)}") from e
