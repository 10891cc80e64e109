"""ASGI application: request context, trigger dispatch, outermost error boundary."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING
from urllib.parse import quote, urlsplit

import httpx
import structlog
from starlette.applications import Starlette
from starlette.routing import Route

from mdgate import responses
from mdgate.errors import UpstreamError
from mdgate.fetcher import LOOP_GUARD_HEADER
from mdgate.gateway import serve_markdown
from mdgate.models.gateway import RequestContext, Trigger, UpstreamFailure
from mdgate.routing import classify, decode_path

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.types import Lifespan

    from mdgate.state import AppState

log = structlog.get_logger()

PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def request_url(request: Request, origin_base_url: str | None = None) -> str:
    """Absolute URL of ``request`` with its path still percent-encoded.

    With ``origin_base_url`` set, scheme and host are replaced so that the
    gateway can front an origin living elsewhere.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = quote(request.scope.get("path") or "/")
    query = request.scope.get("query_string", b"").decode("latin-1")

    url = f"{request.url.scheme}://{request.url.netloc}{path or '/'}"
    if query:
        url = f"{url}?{query}"
    if origin_base_url:
        base = httpx.URL(origin_base_url)
        url = str(httpx.URL(url).copy_with(scheme=base.scheme, host=base.host, port=base.port))
    return url


def build_request_context(
    request: Request, request_id: str, origin_base_url: str | None = None
) -> RequestContext:
    url = request_url(request, origin_base_url)
    params = request.query_params
    return RequestContext(
        method=request.method,
        url=url,
        path=decode_path(urlsplit(url).path),
        accept=request.headers.get("accept"),
        debug=params.get("debug") == "1",
        refresh=params.get("refresh") == "1",
        save_html=params.get("saveHtml") == "1",
        user_agent=params.get("ua") or None,
        request_id=request_id,
    )


async def _pass_through(state: AppState, request: Request, ctx: RequestContext) -> Response:
    log.info("pass_through", url=ctx.url)
    try:
        upstream = await state.fetcher.forward(
            request.method,
            ctx.url,
            request.headers.items(),
            await request.body(),
        )
    except UpstreamError as exc:
        return responses.upstream_failure(
            ctx, None, UpstreamFailure(status=exc.status, reason=exc.reason)
        )
    return responses.pass_through(upstream, head=request.method == "HEAD")


async def handle(request: Request) -> Response:
    state: AppState = request.app.state.gateway
    request_id = str(uuid.uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    debug = request.query_params.get("debug") == "1"

    if LOOP_GUARD_HEADER in request.headers:
        log.error("request_loop_detected", path=request.url.path)
        return responses.loop_detected(request_id)

    try:
        ctx = build_request_context(request, request_id, state.settings.origin.base_url)
        trigger = classify(ctx.path, ctx.accept)
        log.info(
            "incoming",
            method=ctx.method,
            path=ctx.path,
            accept=ctx.accept,
            debug=ctx.debug,
            refresh=ctx.refresh,
            trigger=trigger.value,
        )
        if trigger is Trigger.PASS_THROUGH:
            return await _pass_through(state, request, ctx)
        return await serve_markdown(state, ctx, trigger)
    except Exception as exc:
        log.exception("unhandled_error")
        return responses.internal_error(request_id, exc, debug=debug)


def create_app(state: AppState | None = None, lifespan: Lifespan | None = None) -> Starlette:
    """Build the ASGI app. Either pass ``state`` or a ``lifespan`` that sets it."""
    app = Starlette(
        routes=[Route("/{path:path}", handle, methods=PROXIED_METHODS)],
        lifespan=lifespan,
    )
    if state is not None:
        app.state.gateway = state
    return app
