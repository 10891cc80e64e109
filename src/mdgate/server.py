"""Process entry point: ``python -m mdgate.server`` or the ``mdgate`` script.

Startup order: settings (validation errors abort before anything binds),
logging, then under the ASGI lifespan the object store, the shared HTTP
client and the converter.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette

from mdgate import __version__
from mdgate.app import create_app
from mdgate.config import CacheSettings, LoggingSettings, Settings
from mdgate.converter import build_converter
from mdgate.fetcher import build_http_client
from mdgate.state import build_state
from mdgate.store import SqliteObjectStore

log = structlog.get_logger()


def configure_logging(settings: LoggingSettings) -> None:
    """structlog to stderr, JSON lines or human-readable console output."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def open_store(settings: CacheSettings) -> AsyncIterator[SqliteObjectStore | None]:
    """Yield the object store, or ``None`` when caching is disabled."""
    if not settings.enabled:
        log.info("store_disabled")
        yield None
        return

    db_path = Path(settings.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        store = SqliteObjectStore(db)
        await store.init_db()
        log.info("store_opened", db_path=str(db_path))
        yield store


def build_app(settings: Settings) -> Starlette:
    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            store = await stack.enter_async_context(open_store(settings.cache))
            http_client = await stack.enter_async_context(build_http_client(settings.origin))
            converter = build_converter(settings.converter, http_client)
            app.state.gateway = build_state(settings, http_client, converter, store)
            log.info(
                "gateway_started",
                version=__version__,
                origin=settings.origin.base_url,
                converter=settings.converter.backend,
                store=store is not None,
            )
            yield
        log.info("gateway_stopped")

    return create_app(lifespan=lifespan)


def main() -> None:
    settings = Settings()
    configure_logging(settings.logging)
    uvicorn.run(
        build_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
