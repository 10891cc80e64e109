"""Integration test fixtures.

Provides the full ASGI app wired with an in-memory SQLite store, a real
httpx origin client (mocked per test with respx) and a stub converter. The
gateway is driven through ``httpx.ASGITransport``, which respx does not
intercept.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from mdgate.app import create_app
from mdgate.config import Settings
from mdgate.state import AppState, build_state
from mdgate.store import SqliteObjectStore

if TYPE_CHECKING:
    from tests.stubs import StubConverter

GATEWAY_URL = "https://example.com"


@pytest.fixture()
async def store() -> AsyncIterator[SqliteObjectStore]:
    async with aiosqlite.connect(":memory:") as db:
        s = SqliteObjectStore(db)
        await s.init_db()
        yield s


@pytest.fixture()
async def origin_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client


@pytest.fixture()
def make_state(
    origin_client: httpx.AsyncClient,
    store: SqliteObjectStore,
    converter: StubConverter,
) -> Callable[..., AppState]:
    def _make(settings: Settings | None = None, with_store: bool = True) -> AppState:
        return build_state(
            settings or Settings(),
            origin_client,
            converter,
            store if with_store else None,
        )

    return _make


@pytest.fixture()
def make_gateway(
    make_state: Callable[..., AppState],
) -> Callable[..., httpx.AsyncClient]:
    """Return a factory for clients talking to the gateway app."""

    def _make(**state_kwargs: object) -> httpx.AsyncClient:
        app = create_app(make_state(**state_kwargs))
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=GATEWAY_URL)

    return _make


@pytest.fixture()
async def gateway(
    make_gateway: Callable[..., httpx.AsyncClient],
) -> AsyncIterator[httpx.AsyncClient]:
    async with make_gateway() as client:
        yield client
