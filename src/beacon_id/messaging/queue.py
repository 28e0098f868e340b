"""
Message queues between the identity worker and the chat gateways.

Queues carry plain JSON-able dicts; the worker converts them to
InboundMessage/OutboundMessage at the edges.

Configuration via environment:
    BEACON_STORAGE_BACKEND=redis  # queues follow the storage backend
    BEACON_REDIS_URL=redis://localhost:6379/0
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from typing import Any

from beacon_id.core.logging import get_logger

IDENTITY_IN = "identity:in"
IDENTITY_OUT = "identity:out"


class MessageQueue(ABC):
    """
    Ordered, single-consumer message queue.

    ``get`` blocks until a message is available or ``timeout`` seconds pass,
    in which case it returns None.
    """

    @abstractmethod
    async def put(self, message: dict[str, Any]) -> None:
        """Append a message."""
        ...

    @abstractmethod
    async def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Take the oldest message."""
        ...

    async def close(self) -> None:
        """Release connections. No-op by default."""
        return None


class InMemoryQueue(MessageQueue):
    """asyncio.Queue-backed queue for tests and single-process use."""

    def __init__(self, name: str = IDENTITY_IN) -> None:
        self.name = name
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def put(self, message: dict[str, Any]) -> None:
        await self._queue.put(message)

    async def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def qsize(self) -> int:
        return self._queue.qsize()

    def drain(self) -> list[dict[str, Any]]:
        """Remove and return every queued message without waiting."""
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items


class RedisQueue(MessageQueue):
    """
    Redis list queue: RPUSH to produce, BLPOP to consume.

    Requires: pip install redis
    """

    def __init__(
        self,
        name: str,
        redis_url: str | None = None,
        prefix: str = "beacon_id",
    ) -> None:
        self.name = name
        self._redis_url = redis_url or os.environ.get(
            "BEACON_REDIS_URL",
            "redis://localhost:6379/0",
        )
        self._key = f"{prefix}:queue:{name}"
        self._client = None
        self._logger = get_logger("queue.redis")

    def _get_client(self):
        """Lazy-load Redis client."""
        if self._client is None:
            import redis.asyncio as redis

            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def put(self, message: dict[str, Any]) -> None:
        client = self._get_client()
        await client.rpush(self._key, json.dumps(message))

    async def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        client = self._get_client()
        # BLPOP timeout 0 blocks forever
        item = await client.blpop([self._key], timeout=timeout or 0)
        if item is None:
            return None
        _, data = item
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            self._logger.error(f"Dropping non-JSON message from {self._key}: {data!r}")
            return None

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
