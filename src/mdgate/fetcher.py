"""Origin HTTP access: document fetches for conversion and pass-through proxying.

A single ``httpx.AsyncClient`` is created at startup and shared by all
requests. No retries happen here; a failing origin is reported once and the
caller decides what the client sees.
"""

from __future__ import annotations

from collections.abc import Iterable

import httpx
import structlog
from pydantic import BaseModel

from mdgate.config import OriginSettings
from mdgate.errors import UpstreamError

log = structlog.get_logger()

UPSTREAM_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_CONTENT_TYPE = "text/html"

# Connection-scoped headers that must not be forwarded in either direction.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)
# httpx negotiates its own encoding and recomputes the length.
_REQUEST_ONLY_HEADERS = frozenset({"host", "content-length", "accept-encoding"})
# Stamped on every origin request. A gateway that receives it is talking to
# itself, which happens when the origin host resolves back to the gateway.
LOOP_GUARD_HEADER = "X-Mdgate-Hop"


class UpstreamResponse(BaseModel):
    content_type: str  # Lower-cased, parameters stripped
    body: bytes
    url: str  # Final URL after redirects


def build_http_client(settings: OriginSettings | None = None) -> httpx.AsyncClient:
    """Create the shared origin client. Redirects are followed automatically."""
    settings = settings or OriginSettings()
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=settings.max_redirects,
        timeout=httpx.Timeout(settings.timeout_seconds),
    )


def normalize_content_type(value: str | None) -> str:
    """``"Text/HTML; charset=UTF-8"`` -> ``"text/html"``; junk -> ``"text/html"``."""
    if not value:
        return DEFAULT_CONTENT_TYPE
    media_type = value.split(";", 1)[0].strip().lower()
    if "/" not in media_type or media_type.startswith("/") or media_type.endswith("/"):
        return DEFAULT_CONTENT_TYPE
    return media_type


def filter_headers(
    headers: Iterable[tuple[str, str]], extra: frozenset[str] = frozenset()
) -> list[tuple[str, str]]:
    drop = HOP_BY_HOP_HEADERS | extra
    return [(name, value) for name, value in headers if name.lower() not in drop]


class Fetcher:
    def __init__(self, client: httpx.AsyncClient, settings: OriginSettings | None = None) -> None:
        self._client = client
        self._settings = settings or OriginSettings()

    async def fetch_document(self, url: str, user_agent: str | None = None) -> UpstreamResponse:
        """GET ``url`` for conversion.

        Raises:
            UpstreamError: On a non-2xx status (``status`` set) or a transport
                failure including too many redirects (``status`` is ``None``).
        """
        headers = {
            "Accept": UPSTREAM_ACCEPT,
            "User-Agent": user_agent or self._settings.user_agent,
            LOOP_GUARD_HEADER: "1",
        }
        log.info("upstream_fetch", url=url, user_agent=headers["User-Agent"])
        try:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
        except httpx.HTTPError as exc:
            log.warning("upstream_unreachable", url=url, error=str(exc))
            raise UpstreamError(None, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            log.warning(
                "upstream_failed",
                url=url,
                status=response.status_code,
                reason=response.reason_phrase,
            )
            raise UpstreamError(response.status_code, response.reason_phrase)

        return UpstreamResponse(
            content_type=normalize_content_type(response.headers.get("content-type")),
            body=response.content,
            url=str(response.url),
        )

    async def forward(
        self,
        method: str,
        url: str,
        headers: Iterable[tuple[str, str]],
        body: bytes = b"",
    ) -> httpx.Response:
        """Proxy a non-triggered request to the origin unchanged.

        Redirects are not followed so the client sees them as the origin sent
        them. Transport errors propagate as ``UpstreamError``.
        """
        outbound = filter_headers(headers, extra=_REQUEST_ONLY_HEADERS)
        outbound.append((LOOP_GUARD_HEADER, "1"))
        try:
            return await self._client.request(
                method,
                url,
                headers=outbound,
                content=body or None,
                follow_redirects=False,
            )
        except httpx.HTTPError as exc:
            log.warning("passthrough_unreachable", url=url, error=str(exc))
            raise UpstreamError(None, f"{type(exc).__name__}: {exc}") from exc
