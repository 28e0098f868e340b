"""
Redis Storage Backend.

Production storage backend using Redis for persistence.
Requires redis-py package.
"""

from __future__ import annotations

import json
import os
from typing import Any

from beacon_id.storage.base import StorageBackend, register_storage_backend


class RedisStorage(StorageBackend):
    """
    Redis storage backend.

    Uses Redis for persistent storage. Suitable for production.
    Requires: pip install redis
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "beacon_id",
    ) -> None:
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL (or from BEACON_REDIS_URL env)
            prefix: Key prefix for all storage keys
        """
        self._redis_url = redis_url or os.environ.get(
            "BEACON_REDIS_URL",
            "redis://localhost:6379/0",
        )
        self._prefix = prefix
        self._client = None

    def _get_client(self):
        """Lazy-load Redis client."""
        if self._client is None:
            import redis.asyncio as redis

            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _make_key(self, collection: str, key: str) -> str:
        """Create Redis key from collection and key."""
        return f"{self._prefix}:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:_index"

    async def save(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> None:
        """Save data to Redis."""
        client = self._get_client()
        await client.set(self._make_key(collection, key), json.dumps(data))

        # Also add to collection index
        await client.sadd(self._index_key(collection), key)

    async def get(
        self,
        collection: str,
        key: str,
    ) -> dict[str, Any] | None:
        """Get data from Redis."""
        client = self._get_client()
        data = await client.get(self._make_key(collection, key))

        if data is None:
            return None
        return json.loads(data)

    async def delete(
        self,
        collection: str,
        key: str,
    ) -> bool:
        """Delete data from Redis."""
        client = self._get_client()
        result = await client.delete(self._make_key(collection, key))

        # Remove from index
        await client.srem(self._index_key(collection), key)

        return result > 0

    async def pop(
        self,
        collection: str,
        key: str,
    ) -> dict[str, Any] | None:
        """Read and delete a record with GETDEL (Redis >= 6.2)."""
        client = self._get_client()
        data = await client.getdel(self._make_key(collection, key))
        await client.srem(self._index_key(collection), key)

        if data is None:
            return None
        return json.loads(data)

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Query data with optional filters."""
        client = self._get_client()

        # Get all keys in collection from index
        keys = await client.smembers(self._index_key(collection))

        results = []
        for key in sorted(keys):
            data = await self.get(collection, key)
            if data is None:
                continue

            if filters and any(data.get(k) != v for k, v in filters.items()):
                continue

            data["_key"] = key
            results.append(data)

        return results

    async def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> bool:
        """Update existing data."""
        existing = await self.get(collection, key)
        if existing is None:
            return False

        existing.update(data)
        await self.save(collection, key, existing)
        return True

    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        """Count records in collection."""
        if filters:
            results = await self.query(collection, filters)
            return len(results)

        client = self._get_client()
        return await client.scard(self._index_key(collection))

    async def clear(self, collection: str) -> int:
        """Clear all records from a collection."""
        client = self._get_client()
        keys = await client.smembers(self._index_key(collection))

        for key in keys:
            await self.delete(collection, key)

        return len(keys)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


# Register backend
register_storage_backend("redis", RedisStorage)
