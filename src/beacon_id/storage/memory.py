"""
In-Memory Storage Backend.

Default backend: wallet rows, gateway mappings and pending payments live in
process dicts and are lost on restart. Fine for development and tests.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from beacon_id.storage.base import StorageBackend, register_storage_backend


class InMemoryStorage(StorageBackend):
    """
    Dict-of-dicts storage.

    No method awaits between reading and writing, so each call is atomic
    with respect to other tasks on the same event loop. Records are copied
    on the way in and out.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault(name, {})

    async def save(self, collection: str, key: str, data: dict[str, Any]) -> None:
        self._collection(collection)[key] = deepcopy(data)

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        data = self._collection(collection).get(key)
        return deepcopy(data) if data is not None else None

    async def delete(self, collection: str, key: str) -> bool:
        return self._collection(collection).pop(key, None) is not None

    async def pop(self, collection: str, key: str) -> dict[str, Any] | None:
        return self._collection(collection).pop(key, None)

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Records matching every filter exactly, each with its key under ``_key``."""
        results = []
        for key, data in self._collection(collection).items():
            if filters and any(data.get(k) != v for k, v in filters.items()):
                continue
            results.append({**deepcopy(data), "_key": key})
        return results

    async def update(self, collection: str, key: str, data: dict[str, Any]) -> bool:
        record = self._collection(collection).get(key)
        if record is None:
            return False
        record.update(deepcopy(data))
        return True

    async def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        if filters:
            return len(await self.query(collection, filters))
        return len(self._collection(collection))

    async def clear(self, collection: str) -> int:
        records = self._collection(collection)
        count = len(records)
        records.clear()
        return count


register_storage_backend("memory", InMemoryStorage)
