from __future__ import annotations

from pydantic import BaseModel


class ConversionDocument(BaseModel):
    """A named binary document handed to a converter."""

    name: str  # Label only, derived from the source path
    content: bytes
    content_type: str = "text/html"


class ConversionResult(BaseModel):
    """One entry returned by a converter."""

    name: str
    data: str
    mime_type: str | None = None
    format: str | None = None
    tokens: int | None = None
