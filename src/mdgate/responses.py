"""Response composer: one builder per gateway outcome.

Internal details never reach clients unless ``debug=1`` was requested, and
even then tracebacks are truncated.
"""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING
from urllib.parse import quote

from starlette.responses import Response

from mdgate.cache import MARKDOWN_CONTENT_TYPE, PLAIN_CONTENT_TYPE
from mdgate.fetcher import filter_headers
from mdgate.models.gateway import CacheStatus

if TYPE_CHECKING:
    import httpx

    from mdgate.models.gateway import (
        ConversionFailure,
        ConverterInfo,
        RequestContext,
        Resolution,
        Trigger,
        UpstreamFailure,
    )
    from mdgate.pipeline import StageTimings

MAX_DEBUG_TRACE_CHARS = 2000
NO_CACHE = "no-cache, no-store, must-revalidate"

# Starlette recomputes the length; httpx already decoded the body.
_PASSTHROUGH_DROP = frozenset({"content-length", "content-encoding"})


def _header_safe(value: str) -> str:
    return quote(value, safe="/:?&=;,.-_~%+@!$'()*[]")


def _provenance_headers(ctx: RequestContext, resolution: Resolution | None) -> dict[str, str]:
    headers = {"X-Request-Id": ctx.request_id, "Vary": "Accept"}
    if resolution is not None:
        headers["X-Source-URL"] = _header_safe(resolution.target)
    return headers


def _debug_headers(
    ctx: RequestContext,
    resolution: Resolution | None,
    trigger: Trigger | None,
    timings: StageTimings | None,
    converter: ConverterInfo | None = None,
) -> dict[str, str]:
    if not ctx.debug:
        return {}
    headers: dict[str, str] = {}
    if trigger is not None:
        headers["X-Debug-Trigger"] = trigger.value
    if resolution is not None:
        headers["X-Debug-Cache-Key"] = _header_safe(resolution.key)
    if timings is not None and timings.as_dict():
        headers["X-Debug-Timings"] = timings.header_value()
    if converter is not None:
        parts = []
        if converter.mime_type:
            parts.append(f"mime={converter.mime_type}")
        if converter.format:
            parts.append(f"format={converter.format}")
        if converter.tokens is not None:
            parts.append(f"tokens={converter.tokens}")
        if parts:
            headers["X-Debug-Converter"] = "; ".join(parts)
    return headers


def cache_hit(
    ctx: RequestContext,
    resolution: Resolution,
    content: str,
    *,
    trigger: Trigger,
    timings: StageTimings,
) -> Response:
    headers = {
        "X-Cache": CacheStatus.HIT.value,
        **_provenance_headers(ctx, resolution),
        **_debug_headers(ctx, resolution, trigger, timings),
    }
    return Response(content, status_code=200, media_type=MARKDOWN_CONTENT_TYPE, headers=headers)


def converted(
    ctx: RequestContext,
    resolution: Resolution,
    markdown: str,
    cache_status: CacheStatus,
    *,
    trigger: Trigger,
    timings: StageTimings,
    converter: ConverterInfo,
) -> Response:
    headers = {
        "Cache-Control": NO_CACHE,
        "X-Cache": cache_status.value,
        **_provenance_headers(ctx, resolution),
        **_debug_headers(ctx, resolution, trigger, timings, converter),
    }
    if converter.tokens is not None:
        headers["X-Markdown-Tokens"] = str(converter.tokens)
    return Response(markdown, status_code=200, media_type=MARKDOWN_CONTENT_TYPE, headers=headers)


def quarantined(
    ctx: RequestContext,
    resolution: Resolution,
    payload: str,
    cache_status: CacheStatus,
    *,
    trigger: Trigger,
    timings: StageTimings,
) -> Response:
    """Converter echoed HTML: deliver the bytes, but not as Markdown."""
    headers = {
        "Cache-Control": NO_CACHE,
        "X-Cache": cache_status.value,
        **_provenance_headers(ctx, resolution),
        **_debug_headers(ctx, resolution, trigger, timings),
    }
    return Response(payload, status_code=200, media_type=PLAIN_CONTENT_TYPE, headers=headers)


def upstream_failure(
    ctx: RequestContext,
    resolution: Resolution | None,
    failure: UpstreamFailure,
    *,
    trigger: Trigger | None = None,
    timings: StageTimings | None = None,
) -> Response:
    """502 for a non-2xx or unreachable origin. Also used by pass-through."""
    if failure.status is None:
        body = f"Upstream fetch failed: unreachable ({failure.reason})"
    else:
        body = f"Upstream fetch failed: {failure.status} {failure.reason}".rstrip()
    headers = {
        **_provenance_headers(ctx, resolution),
        **_debug_headers(ctx, resolution, trigger, timings),
    }
    return Response(body, status_code=502, media_type=PLAIN_CONTENT_TYPE, headers=headers)


def conversion_failure(
    ctx: RequestContext,
    resolution: Resolution,
    failure: ConversionFailure,
    *,
    trigger: Trigger,
    timings: StageTimings,
) -> Response:
    body = "Markdown conversion failed"
    if ctx.debug:
        body = f"{body}: {failure.reason}"[:MAX_DEBUG_TRACE_CHARS]
    headers = {
        **_provenance_headers(ctx, resolution),
        **_debug_headers(ctx, resolution, trigger, timings),
    }
    return Response(body, status_code=500, media_type=PLAIN_CONTENT_TYPE, headers=headers)


def internal_error(request_id: str, exc: BaseException, debug: bool = False) -> Response:
    """Last-resort 500. The request id is always in the body for log lookup."""
    body = f"Internal error (request id: {request_id})"
    if debug:
        trace = "".join(traceback.format_exception(exc))
        body = f"{body}\n\n{trace[:MAX_DEBUG_TRACE_CHARS]}"
    return Response(
        body,
        status_code=500,
        media_type=PLAIN_CONTENT_TYPE,
        headers={"X-Request-Id": request_id},
    )


def pass_through(upstream: httpx.Response, *, head: bool = False) -> Response:
    """Relay the origin response as-is (status, headers, body).

    A HEAD response has no body, so the origin's ``Content-Length`` is kept.
    """
    response = Response(upstream.content, status_code=upstream.status_code)
    for name, value in filter_headers(upstream.headers.multi_items(), extra=_PASSTHROUGH_DROP):
        response.headers.append(name, value)
    if head and "content-length" in upstream.headers:
        response.headers["content-length"] = upstream.headers["content-length"]
    return response


def loop_detected(request_id: str) -> Response:
    """508 for a request that the gateway itself sent to the origin."""
    return Response(
        "Loop detected: the origin resolves back to this gateway",
        status_code=508,
        media_type=PLAIN_CONTENT_TYPE,
        headers={"X-Request-Id": request_id},
    )
