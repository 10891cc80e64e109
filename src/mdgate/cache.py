"""Markdown artifact cache on top of an ObjectStore.

All operations catch ``StoreError`` internally and degrade gracefully: read
failures are reported as a miss, write failures are logged and ignored (the
freshly converted content is still returned to the client). Infrastructure
errors never cross the MarkdownCache boundary.

Invariant: the primary key only ever receives genuine Markdown. Converter
output that looks like HTML is written under the quarantine key instead.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from mdgate.errors import StoreError
from mdgate.models.gateway import CacheStatus, ConverterInfo, LookupResult, LookupStatus
from mdgate.store import ObjectStore

log = structlog.get_logger()

MAX_AGE = timedelta(days=90)

MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"
PLAIN_CONTENT_TYPE = "text/plain; charset=utf-8"

SNAPSHOT_SUFFIX = ".source.html"
QUARANTINE_SUFFIX = ".ai-failed.txt"
QUARANTINE_NOTE = "ai-output-looks-like-html"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def snapshot_key(key: str) -> str:
    return f"{key}{SNAPSHOT_SUFFIX}"


def quarantine_key(key: str) -> str:
    return f"{key}{QUARANTINE_SUFFIX}"


class MarkdownCache:
    """Reads and writes converted artifacts. ``store=None`` means no store."""

    def __init__(
        self,
        store: ObjectStore | None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def available(self) -> bool:
        return self._store is not None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def lookup(self, key: str, refresh: bool = False) -> LookupResult:
        """Return a hit only for a fresh object declared as Markdown.

        With ``refresh`` the store is not queried at all. Stale or mistyped
        objects are reported as a miss and left in place to be overwritten.
        """
        if self._store is None:
            return LookupResult(status=LookupStatus.UNAVAILABLE)
        if refresh:
            log.info("cache_bypassed", key=key)
            return LookupResult(status=LookupStatus.MISS)

        try:
            existing = await self._store.get(key)
        except StoreError:
            log.warning("cache_read_error", key=key, exc_info=True)
            return LookupResult(status=LookupStatus.MISS)

        if existing is None:
            log.info("cache_miss", key=key)
            return LookupResult(status=LookupStatus.MISS)

        if not existing.content_type.lower().startswith("text/markdown"):
            log.info("cache_wrong_content_type", key=key, content_type=existing.content_type)
            return LookupResult(status=LookupStatus.MISS)

        age = self._clock() - existing.uploaded_at
        if age >= MAX_AGE:
            log.info("cache_stale", key=key, uploaded_at=existing.uploaded_at.isoformat())
            return LookupResult(status=LookupStatus.MISS)

        log.info("cache_hit", key=key, uploaded_at=existing.uploaded_at.isoformat())
        return LookupResult(
            status=LookupStatus.HIT,
            content=existing.text(),
            metadata=existing.metadata,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def store_markdown(
        self,
        key: str,
        markdown: str,
        *,
        source: str,
        request_id: str,
        converter: ConverterInfo | None = None,
        final_url: str | None = None,
    ) -> CacheStatus:
        """Write genuine Markdown to the primary key. Non-fatal on failure."""
        if self._store is None:
            return CacheStatus.NO_STORE

        metadata = {
            "source": source,
            "generatedAt": self._clock().isoformat(),
            "reqId": request_id,
        }
        if final_url and final_url != source:
            metadata["finalUrl"] = final_url
        if converter is not None:
            if converter.mime_type:
                metadata["converterMimeType"] = converter.mime_type
            if converter.format:
                metadata["converterFormat"] = converter.format
            if converter.tokens is not None:
                metadata["converterTokens"] = str(converter.tokens)

        try:
            await self._store.put(key, markdown, MARKDOWN_CONTENT_TYPE, metadata)
        except StoreError:
            log.warning("cache_write_error", key=key, exc_info=True)
            return CacheStatus.STORE_FAILED

        log.info("markdown_stored", key=key)
        return CacheStatus.STORED

    async def quarantine(
        self,
        key: str,
        payload: str,
        *,
        source: str,
        request_id: str,
    ) -> CacheStatus:
        """Write suspect converter output next to, never at, the primary key."""
        if self._store is None:
            return CacheStatus.NO_STORE

        side_key = quarantine_key(key)
        metadata = {
            "source": source,
            "note": QUARANTINE_NOTE,
            "time": self._clock().isoformat(),
            "reqId": request_id,
        }
        try:
            await self._store.put(side_key, payload, PLAIN_CONTENT_TYPE, metadata)
        except StoreError:
            log.warning("quarantine_write_error", key=side_key, exc_info=True)
            return CacheStatus.STORE_FAILED

        log.info("quarantine_stored", key=side_key)
        return CacheStatus.QUARANTINED

    async def save_snapshot(
        self,
        key: str,
        body: bytes,
        content_type: str,
        *,
        source: str,
        request_id: str,
        final_url: str | None = None,
    ) -> bool:
        """Keep the raw origin bytes for debugging. Returns whether it was written."""
        if self._store is None:
            return False

        side_key = snapshot_key(key)
        metadata = {
            "source": source,
            "savedAt": self._clock().isoformat(),
            "reqId": request_id,
        }
        if final_url and final_url != source:
            metadata["finalUrl"] = final_url
        try:
            await self._store.put(side_key, body, content_type, metadata)
        except StoreError:
            log.warning("snapshot_write_error", key=side_key, exc_info=True)
            return False

        log.info("snapshot_stored", key=side_key)
        return True
