"""Key-value storage interface.

The engine persists policy records, feedback entries, experiments and
routing decisions through this minimal namespaced interface. Values are
JSON-compatible dicts; callers own (de)serialization via pydantic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

# Namespaces used by the engine
POLICY = "policy"
FEEDBACK = "feedback"
EXPERIMENTS = "experiments"
ROUTES = "routes"


class KeyValueStore(ABC):
    """Abstract async key-value store with namespaces."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        """Insert or replace a value."""

    @abstractmethod
    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        """Return every (key, value) pair in a namespace, ordered by key."""

    async def close(self) -> None:  # noqa: B027
        """Release any held resources."""
