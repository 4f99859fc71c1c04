"""SQLite storage backend.

Uses aiosqlite for async access with WAL mode for concurrent reads.
All namespaces share one ``records`` table keyed by (namespace, key)
with JSON-encoded values.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from quorum.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    namespace  TEXT NOT NULL,
    key        TEXT NOT NULL,
    value_json TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (namespace, key)
);

CREATE INDEX IF NOT EXISTS idx_records_namespace ON records(namespace);
"""


async def init_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open the database, enable WAL mode and create tables if needed.

    Args:
        db_path: Path to the SQLite file. Supports ~ expansion;
            ``":memory:"`` opens a private in-memory database.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if str(db_path) == ":memory:":
        db = await aiosqlite.connect(":memory:")
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(resolved))
        await db.execute("PRAGMA journal_mode=WAL")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Storage database initialized at %s", db_path)
    return db


class SQLiteStore(KeyValueStore):
    """Persistent store backed by an aiosqlite connection.

    Build one with ``await SQLiteStore.open(path)`` or wrap a connection
    returned by :func:`init_db`.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def open(cls, db_path: str | Path) -> SQLiteStore:
        return cls(await init_db(db_path))

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        cursor = await self._db.execute(
            "SELECT value_json FROM records WHERE namespace = ? AND key = ?",
            (namespace, key),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return json.loads(row[0])

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        await self._db.execute(
            """
            INSERT OR REPLACE INTO records (namespace, key, value_json, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                namespace,
                key,
                json.dumps(value),
                datetime.now(UTC).isoformat(),
            ),
        )
        await self._db.commit()

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        cursor = await self._db.execute(
            "SELECT key, value_json FROM records WHERE namespace = ? ORDER BY key",
            (namespace,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [(key, json.loads(value)) for key, value in rows]

    async def close(self) -> None:
        await self._db.close()
