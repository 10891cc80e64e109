"""HTML to Markdown conversion capabilities.

The gateway core sees one contract: ``to_markdown(documents)`` returns one
``ConversionResult`` per document or raises ``GatewayError``. Anything the
backends return that does not fit that contract is rejected here, in the
adapter, rather than in the pipeline.
"""

from __future__ import annotations

import asyncio
import mimetypes
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from bs4 import BeautifulSoup
from markdownify import markdownify
from pydantic import ValidationError

from mdgate.config import ConverterSettings
from mdgate.errors import ErrorCode, GatewayError
from mdgate.models.conversion import ConversionDocument, ConversionResult

log = structlog.get_logger()

# Elements that are page chrome rather than content.
STRIP_TAGS = ("script", "style", "noscript", "template", "iframe", "nav", "footer", "form")
_TEXT_PASSTHROUGH_TYPES = ("text/plain", "text/markdown")


@runtime_checkable
class MarkdownConverter(Protocol):
    async def to_markdown(self, documents: list[ConversionDocument]) -> list[ConversionResult]:
        """Convert each document to Markdown.

        Raises:
            GatewayError: ``CONVERSION_FAILED`` if the backend fails or its
                answer cannot be read.
        """
        ...


def _html_to_markdown(content: bytes) -> str:
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup.find_all(STRIP_TAGS):
        tag.decompose()
    root = soup.find("main") or soup.find("article") or soup.body or soup
    markdown = markdownify(str(root), heading_style="ATX", bullets="-")
    # Collapse runs of blank lines left behind by removed elements
    lines: list[str] = []
    for line in markdown.splitlines():
        if not line.strip() and lines and not lines[-1].strip():
            continue
        lines.append(line.rstrip())
    return "\n".join(lines).strip() + "\n"


class LocalMarkdownConverter:
    """In-process converter built on BeautifulSoup and markdownify."""

    async def to_markdown(self, documents: list[ConversionDocument]) -> list[ConversionResult]:
        results = []
        for doc in documents:
            try:
                if doc.content_type in _TEXT_PASSTHROUGH_TYPES:
                    data = doc.content.decode("utf-8", errors="replace")
                else:
                    # BeautifulSoup parsing is CPU-bound; keep it off the event loop
                    data = await asyncio.to_thread(_html_to_markdown, doc.content)
            except Exception as exc:
                raise GatewayError(
                    ErrorCode.CONVERSION_FAILED, f"Local conversion of {doc.name!r} failed: {exc}"
                ) from exc
            results.append(
                ConversionResult(
                    name=doc.name,
                    data=data,
                    mime_type=doc.content_type,
                    format="markdown",
                )
            )
        return results


class WorkersAIConverter:
    """Adapter for the Workers AI ``toMarkdown`` REST endpoint.

    The endpoint picks its parser from the uploaded file's extension, so the
    extension is re-derived from the declared content type here.
    """

    def __init__(self, client: httpx.AsyncClient, settings: ConverterSettings) -> None:
        if not settings.workers_ai_account_id or not settings.workers_ai_api_token:
            raise ValueError("workers_ai backend requires account_id and api_token")
        self._client = client
        self._url = (
            f"{settings.workers_ai_base_url.rstrip('/')}"
            f"/accounts/{settings.workers_ai_account_id}/ai/tomarkdown"
        )
        self._token = settings.workers_ai_api_token

    @staticmethod
    def _upload_name(doc: ConversionDocument) -> str:
        extension = mimetypes.guess_extension(doc.content_type) or ".html"
        return f"{doc.name}{extension}"

    async def to_markdown(self, documents: list[ConversionDocument]) -> list[ConversionResult]:
        files = [
            ("files", (self._upload_name(doc), doc.content, doc.content_type)) for doc in documents
        ]
        try:
            response = await self._client.post(
                self._url,
                files=files,
                headers={"Authorization": f"Bearer {self._token}"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GatewayError(
                ErrorCode.CONVERSION_FAILED, f"toMarkdown request failed: {exc}", recoverable=True
            ) from exc

        return self._parse(payload)

    @staticmethod
    def _parse(payload: Any) -> list[ConversionResult]:
        # Envelope: {"success": true, "result": [{name, mimeType, format, tokens, data}]}
        if isinstance(payload, dict):
            if payload.get("success") is False:
                raise GatewayError(
                    ErrorCode.CONVERSION_FAILED, f"toMarkdown errors: {payload.get('errors')}"
                )
            payload = payload.get("result")
        if not isinstance(payload, list):
            raise GatewayError(ErrorCode.CONVERSION_FAILED, "toMarkdown returned no result list")

        results = []
        for item in payload:
            if not isinstance(item, dict):
                raise GatewayError(ErrorCode.CONVERSION_FAILED, "toMarkdown result is not an object")
            if item.get("format") == "error":
                raise GatewayError(
                    ErrorCode.CONVERSION_FAILED, f"toMarkdown failed: {item.get('error')}"
                )
            try:
                results.append(
                    ConversionResult(
                        name=item.get("name", ""),
                        data=item["data"],
                        mime_type=item.get("mimeType"),
                        format=item.get("format"),
                        tokens=item.get("tokens"),
                    )
                )
            except (KeyError, ValidationError) as exc:
                raise GatewayError(
                    ErrorCode.CONVERSION_FAILED, f"toMarkdown result malformed: {exc}"
                ) from exc
        return results


def build_converter(settings: ConverterSettings, client: httpx.AsyncClient) -> MarkdownConverter:
    if settings.backend == "workers_ai":
        return WorkersAIConverter(client, settings)
    return LocalMarkdownConverter()
