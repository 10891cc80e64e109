"""Trigger classification and cache key / source target resolution.

Both functions are pure: no I/O, no logging, same inputs give the same
outputs. The cache relies on that to map one logical document to one key
whichever trigger produced the request.
"""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

import httpx

from mdgate.models.gateway import Resolution, Trigger

MARKDOWN_SUFFIX = ".md"
INDEX_NAME = "index"

# RFC 3986 pchar minus "%": sub-delims, ":", "@" and the segment separator.
_PATH_SAFE = "/!$&'()*+,;=:@"

# A media type token is delimited by start/end, whitespace, "," or ";" (params).
# "text/plain-extended" or "xtext/markdown" must not match.
_MARKDOWN_ACCEPT_RE = re.compile(
    r"(?:^|[\s,])text/(?:markdown|plain)(?=$|[\s,;])",
    re.IGNORECASE,
)


def decode_path(raw_path: str) -> str:
    """Percent-decode a URL path so encoded characters cannot hide the suffix."""
    return unquote(raw_path or "/") or "/"


def accepts_markdown(accept: str | None) -> bool:
    if not accept:
        return False
    return _MARKDOWN_ACCEPT_RE.search(accept) is not None


def classify(path: str, accept: str | None) -> Trigger:
    """Decide whether a request is served as Markdown, and by which rule.

    The path suffix check is case-sensitive. When both rules hold, the path
    rule wins because it determines how the key and target are derived.
    """
    if path.endswith(MARKDOWN_SUFFIX):
        return Trigger.PATH
    if accepts_markdown(accept):
        return Trigger.ACCEPT
    return Trigger.PASS_THROUGH


def resolve(request_url: str, path: str, trigger: Trigger) -> Resolution:
    """Derive the cache key and the origin URL to convert.

    ``path`` must already be percent-decoded (see :func:`decode_path`).
    """
    if trigger is Trigger.PATH:
        key = path.removeprefix("/")
        source_path = path[: -len(MARKDOWN_SUFFIX)] or "/"
        # Decoded "?", "#", "%" and control characters must be escaped again.
        encoded = quote(source_path, safe=_PATH_SAFE)
        target = str(httpx.URL(request_url).copy_with(path=encoded))
        return Resolution(key=key, target=target)

    if trigger is Trigger.ACCEPT:
        base = path.strip("/") or INDEX_NAME
        return Resolution(key=f"{base}{MARKDOWN_SUFFIX}", target=request_url)

    raise ValueError(f"No resolution for pass-through request: {path!r}")
