"""Key/value object store holding converted artifacts.

The gateway only needs two operations from a store: get-by-key returning
body, content type, metadata and upload timestamp; and put-by-key with
metadata, overwriting any previous object (last write wins).

``SqliteObjectStore`` is the bundled implementation. Unlike the cache layer
it does not swallow errors: every ``aiosqlite.Error``, and every row that
fails to decode, is re-raised as ``StoreError`` so that ``MarkdownCache``
decides how to degrade.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import aiosqlite
import structlog

from mdgate.errors import StoreError
from mdgate.models.store import StoredObject

log = structlog.get_logger()

_CREATE_OBJECTS_TABLE = """
CREATE TABLE IF NOT EXISTS objects (
    key          TEXT PRIMARY KEY,
    body         BLOB NOT NULL,
    content_type TEXT NOT NULL,
    metadata     TEXT NOT NULL DEFAULT '{}',
    uploaded_at  TEXT NOT NULL
)
"""


@runtime_checkable
class ObjectStore(Protocol):
    async def get(self, key: str) -> StoredObject | None:
        """Return the object at ``key`` or ``None`` if absent.

        Raises:
            StoreError: If the store cannot be read.
        """
        ...

    async def put(
        self,
        key: str,
        body: bytes | str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Write ``body`` at ``key``, replacing any existing object.

        Raises:
            StoreError: If the write fails.
        """
        ...


class SqliteObjectStore:
    """SQLite-backed object store implementing ObjectStore."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create the objects table and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_OBJECTS_TABLE)
        await self._db.commit()

    async def get(self, key: str) -> StoredObject | None:
        try:
            cursor = await self._db.execute(
                "SELECT key, body, content_type, metadata, uploaded_at FROM objects WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StoreError(f"Failed to read {key!r}: {exc}") from exc

        if row is None:
            return None

        # Rows may come from other writers; undecodable ones count as unreadable.
        try:
            return StoredObject(
                key=row[0],
                body=bytes(row[1]),
                content_type=row[2],
                metadata=json.loads(row[3] or "{}"),
                uploaded_at=datetime.fromisoformat(row[4]),
            )
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Corrupt object at {key!r}: {exc}") from exc

    async def put(
        self,
        key: str,
        body: bytes | str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO objects "
                "(key, body, content_type, metadata, uploaded_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    key,
                    body,
                    content_type,
                    json.dumps(metadata or {}),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await self._db.commit()
        except aiosqlite.Error as exc:
            raise StoreError(f"Failed to write {key!r}: {exc}") from exc
        log.debug("store_put", key=key, size=len(body), content_type=content_type)
