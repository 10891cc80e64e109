"""Fetch-and-convert pipeline.

Every collaborator failure is caught at its call site and returned as one of
the outcome models; the pipeline never raises for an origin or converter
problem.
"""

from __future__ import annotations

import re
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlsplit

import structlog

from mdgate.errors import GatewayError, UpstreamError
from mdgate.models.conversion import ConversionDocument
from mdgate.models.gateway import (
    ConversionFailure,
    Converted,
    ConverterInfo,
    PipelineOutcome,
    SuspectHtmlOutput,
    UpstreamFailure,
)

if TYPE_CHECKING:
    from mdgate.cache import MarkdownCache
    from mdgate.converter import MarkdownConverter
    from mdgate.fetcher import Fetcher
    from mdgate.models.gateway import RequestContext, Resolution

log = structlog.get_logger()

DEFAULT_FILENAME = "document"
_EXTENSION_RE = re.compile(r"\.[^.]+$")


class StageTimings:
    """Wall-clock milliseconds per pipeline stage, for debug headers."""

    def __init__(self) -> None:
        self._ms: dict[str, float] = {}

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self._ms[stage] = (time.perf_counter() - start) * 1000

    def as_dict(self) -> dict[str, float]:
        return dict(self._ms)

    def header_value(self) -> str:
        return ";".join(f"{stage}={ms:.1f}" for stage, ms in self._ms.items())


def filename_hint(url: str) -> str:
    """Last path segment of ``url`` without its extension, e.g. ``guide`` for ``/docs/guide.html``."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return DEFAULT_FILENAME
    segments = [segment for segment in unquote(path).split("/") if segment]
    if not segments:
        return DEFAULT_FILENAME
    return _EXTENSION_RE.sub("", segments[-1]) or DEFAULT_FILENAME


def looks_like_html(text: str) -> bool:
    return text.lstrip().startswith("<")


class ConversionPipeline:
    def __init__(
        self,
        fetcher: Fetcher,
        converter: MarkdownConverter,
        cache: MarkdownCache,
    ) -> None:
        self._fetcher = fetcher
        self._converter = converter
        self._cache = cache

    async def run(
        self,
        ctx: RequestContext,
        resolution: Resolution,
        timings: StageTimings | None = None,
    ) -> PipelineOutcome:
        """Fetch ``resolution.target`` and convert it. The converter is called once."""
        timings = timings or StageTimings()

        try:
            with timings.measure("fetch"):
                upstream = await self._fetcher.fetch_document(resolution.target, ctx.user_agent)
        except UpstreamError as exc:
            return UpstreamFailure(status=exc.status, reason=exc.reason)

        if ctx.save_html and self._cache.available:
            with timings.measure("snapshot"):
                await self._cache.save_snapshot(
                    resolution.key,
                    upstream.body,
                    upstream.content_type,
                    source=resolution.target,
                    request_id=ctx.request_id,
                    final_url=upstream.url,
                )

        document = ConversionDocument(
            name=filename_hint(resolution.target),
            content=upstream.body,
            content_type=upstream.content_type,
        )
        log.info("conversion_start", filename=document.name, content_type=document.content_type)

        try:
            with timings.measure("convert"):
                results = await self._converter.to_markdown([document])
        except GatewayError as exc:
            log.error("conversion_failed", code=exc.code, reason=exc.message)
            return ConversionFailure(reason=exc.message)
        except Exception as exc:
            log.exception("conversion_crashed")
            return ConversionFailure(reason=f"{type(exc).__name__}: {exc}")

        if not isinstance(results, list) or len(results) != 1:
            count = len(results) if isinstance(results, list) else type(results).__name__
            log.error("conversion_invalid_result", results=count)
            return ConversionFailure(reason=f"expected exactly one result, got {count}")

        result = results[0]
        data = getattr(result, "data", None)
        if not isinstance(data, str):
            log.error("conversion_invalid_result", data_type=type(data).__name__)
            return ConversionFailure(reason="converter result has no text payload")

        if looks_like_html(data):
            log.warning("conversion_output_looks_like_html", snippet=data[:80])
            return SuspectHtmlOutput(payload=data, content_type=upstream.content_type)

        return Converted(
            markdown=data,
            content_type=upstream.content_type,
            converter=ConverterInfo(
                mime_type=result.mime_type,
                format=result.format,
                tokens=result.tokens,
            ),
            final_url=upstream.url,
        )
