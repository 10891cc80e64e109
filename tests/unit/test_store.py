"""Unit tests for mdgate.store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from mdgate.errors import ErrorCode, StoreError
from mdgate.store import ObjectStore

if TYPE_CHECKING:
    from mdgate.store import SqliteObjectStore


class TestSqliteObjectStore:
    async def test_implements_protocol(self, store: SqliteObjectStore) -> None:
        assert isinstance(store, ObjectStore)

    async def test_put_and_get_text(self, store: SqliteObjectStore) -> None:
        await store.put(
            "articles/foo.md",
            "# Foo",
            "text/markdown; charset=utf-8",
            {"source": "https://example.com/articles/foo"},
        )
        obj = await store.get("articles/foo.md")
        assert obj is not None
        assert obj.key == "articles/foo.md"
        assert obj.text() == "# Foo"
        assert obj.content_type == "text/markdown; charset=utf-8"
        assert obj.metadata == {"source": "https://example.com/articles/foo"}

    async def test_put_and_get_bytes(self, store: SqliteObjectStore) -> None:
        raw = "<p>café</p>".encode("latin-1")
        await store.put("a.md.source.html", raw, "text/html")
        obj = await store.get("a.md.source.html")
        assert obj is not None
        assert obj.body == raw

    async def test_get_nonexistent_returns_none(self, store: SqliteObjectStore) -> None:
        assert await store.get("missing.md") is None

    async def test_uploaded_at_is_now(self, store: SqliteObjectStore) -> None:
        await store.put("a.md", "x", "text/markdown")
        obj = await store.get("a.md")
        assert obj is not None
        assert obj.uploaded_at.tzinfo is not None
        assert datetime.now(UTC) - obj.uploaded_at < timedelta(minutes=1)

    async def test_put_overwrites(self, store: SqliteObjectStore) -> None:
        await store.put("a.md", "Version 1", "text/markdown", {"reqId": "1"})
        await store.put("a.md", "Version 2", "text/markdown", {"reqId": "2"})
        obj = await store.get("a.md")
        assert obj is not None
        assert obj.text() == "Version 2"
        assert obj.metadata == {"reqId": "2"}

    async def test_missing_metadata_defaults_empty(self, store: SqliteObjectStore) -> None:
        await store.put("a.md", "x", "text/markdown")
        obj = await store.get("a.md")
        assert obj is not None
        assert obj.metadata == {}

    async def test_read_failure_raises_store_error(self, store: SqliteObjectStore) -> None:
        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        store._db.execute = failing_execute  # type: ignore[assignment]
        with pytest.raises(StoreError) as exc_info:
            await store.get("a.md")
        assert exc_info.value.code == ErrorCode.STORE_UNAVAILABLE

    async def test_write_failure_raises_store_error(self, store: SqliteObjectStore) -> None:
        async def failing_execute(*args, **kwargs):
            raise aiosqlite.OperationalError("database is locked")

        store._db.execute = failing_execute  # type: ignore[assignment]
        with pytest.raises(StoreError):
            await store.put("a.md", "x", "text/markdown")

    @pytest.mark.parametrize(
        ("metadata", "uploaded_at"),
        [
            ('{"tokens": 7}', "2026-01-01T00:00:00+00:00"),
            ("{not json", "2026-01-01T00:00:00+00:00"),
            ("{}", "yesterday"),
        ],
    )
    async def test_undecodable_row_raises_store_error(
        self, store: SqliteObjectStore, metadata: str, uploaded_at: str
    ) -> None:
        await store._db.execute(
            "INSERT INTO objects (key, body, content_type, metadata, uploaded_at) "
            "VALUES (?, ?, ?, ?, ?)",
            ("a.md", b"# A", "text/markdown", metadata, uploaded_at),
        )
        await store._db.commit()
        with pytest.raises(StoreError) as exc_info:
            await store.get("a.md")
        assert exc_info.value.code == ErrorCode.STORE_UNAVAILABLE
