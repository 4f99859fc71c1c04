"""In-process storage backend (the default)."""

from __future__ import annotations

import copy
from typing import Any

from quorum.storage.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        value = self._data.get(namespace, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        bucket = self._data.get(namespace, {})
        return [(k, copy.deepcopy(bucket[k])) for k in sorted(bucket)]
