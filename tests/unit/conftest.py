"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

import aiosqlite
import pytest

from mdgate.cache import MarkdownCache
from mdgate.store import SqliteObjectStore


@pytest.fixture()
async def store():
    """In-memory SQLite object store for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        s = SqliteObjectStore(db)
        await s.init_db()
        yield s


@pytest.fixture()
def cache(store: SqliteObjectStore) -> MarkdownCache:
    return MarkdownCache(store)
