"""Namespaced key-value storage for policy, feedback and experiments."""

from quorum.storage.base import EXPERIMENTS, FEEDBACK, POLICY, KeyValueStore
from quorum.storage.memory import MemoryStore
from quorum.storage.sqlite import SQLiteStore, init_db

__all__ = [
    "EXPERIMENTS",
    "FEEDBACK",
    "KeyValueStore",
    "MemoryStore",
    "POLICY",
    "SQLiteStore",
    "init_db",
]
