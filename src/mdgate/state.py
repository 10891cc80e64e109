"""Long-lived collaborators shared by all requests.

Nothing here is mutated after startup; per-request data lives in
``RequestContext`` and the object store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from mdgate.cache import MarkdownCache
from mdgate.fetcher import Fetcher
from mdgate.pipeline import ConversionPipeline

if TYPE_CHECKING:
    import httpx

    from mdgate.config import Settings
    from mdgate.converter import MarkdownConverter
    from mdgate.store import ObjectStore


@dataclass(frozen=True)
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    fetcher: Fetcher
    converter: MarkdownConverter
    cache: MarkdownCache
    pipeline: ConversionPipeline
    store: ObjectStore | None = None


def build_state(
    settings: Settings,
    http_client: httpx.AsyncClient,
    converter: MarkdownConverter,
    store: ObjectStore | None,
) -> AppState:
    """Wire the collaborators together. ``store=None`` runs without a cache."""
    fetcher = Fetcher(http_client, settings.origin)
    cache = MarkdownCache(store)
    return AppState(
        settings=settings,
        http_client=http_client,
        fetcher=fetcher,
        converter=converter,
        cache=cache,
        pipeline=ConversionPipeline(fetcher, converter, cache),
        store=store,
    )
