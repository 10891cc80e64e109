from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class Trigger(StrEnum):
    PASS_THROUGH = "pass-through"
    PATH = "path"  # Path ends with ".md"
    ACCEPT = "accept"  # Accept header names text/markdown or text/plain


class RequestContext(BaseModel):
    """Immutable per-request view of the incoming request."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str  # Absolute URL, already re-targeted at the origin when configured
    path: str  # Percent-decoded path component
    accept: str | None = None
    debug: bool = False
    refresh: bool = False
    save_html: bool = False
    user_agent: str | None = None  # ?ua= override
    request_id: str


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    target: str


class LookupStatus(StrEnum):
    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class LookupResult(BaseModel):
    status: LookupStatus
    content: str | None = None
    metadata: dict[str, str] = {}


class CacheStatus(StrEnum):
    HIT = "hit-from-store"
    STORED = "miss-regenerated-and-stored"
    NO_STORE = "miss-regenerated-no-store"
    STORE_FAILED = "miss-regenerated-store-failed"
    QUARANTINED = "miss-quarantined"


class ConverterInfo(BaseModel):
    """Metadata the converter reported alongside its output."""

    mime_type: str | None = None
    format: str | None = None
    tokens: int | None = None


# ---------------------------------------------------------------------------
# Pipeline outcomes
# ---------------------------------------------------------------------------


class Converted(BaseModel):
    kind: Literal["converted"] = "converted"
    markdown: str
    content_type: str  # Origin content type, lower-cased without parameters
    converter: ConverterInfo = ConverterInfo()
    final_url: str | None = None  # Origin URL after redirects


class SuspectHtmlOutput(BaseModel):
    """Converter "succeeded" but echoed HTML instead of Markdown."""

    kind: Literal["suspect_html"] = "suspect_html"
    payload: str
    content_type: str


class UpstreamFailure(BaseModel):
    kind: Literal["upstream_failure"] = "upstream_failure"
    status: int | None = None  # None when the origin was unreachable
    reason: str


class ConversionFailure(BaseModel):
    kind: Literal["conversion_failure"] = "conversion_failure"
    reason: str


PipelineOutcome = Converted | SuspectHtmlOutput | UpstreamFailure | ConversionFailure
