"""Unit tests for mdgate.converter."""

from __future__ import annotations

import httpx
import pytest
import respx

from mdgate.config import ConverterSettings
from mdgate.converter import (
    LocalMarkdownConverter,
    MarkdownConverter,
    WorkersAIConverter,
    build_converter,
)
from mdgate.errors import ErrorCode, GatewayError
from mdgate.models.conversion import ConversionDocument
from tests.stubs import SAMPLE_HTML

TOMARKDOWN_URL = "https://api.cloudflare.com/client/v4/accounts/acct/ai/tomarkdown"


def _doc(content: bytes = SAMPLE_HTML.encode(), content_type: str = "text/html") -> ConversionDocument:
    return ConversionDocument(name="foo", content=content, content_type=content_type)


def _workers_settings() -> ConverterSettings:
    return ConverterSettings(
        backend="workers_ai",
        workers_ai_account_id="acct",
        workers_ai_api_token="secret",
    )


# ---------------------------------------------------------------------------
# LocalMarkdownConverter
# ---------------------------------------------------------------------------


class TestLocalMarkdownConverter:
    async def test_implements_protocol(self) -> None:
        assert isinstance(LocalMarkdownConverter(), MarkdownConverter)

    async def test_converts_main_content(self) -> None:
        results = await LocalMarkdownConverter().to_markdown([_doc()])
        assert len(results) == 1
        result = results[0]
        assert result.name == "foo"
        assert result.data.startswith("# Foo")
        assert "**world**" in result.data
        assert result.format == "markdown"
        assert result.mime_type == "text/html"

    async def test_strips_chrome(self) -> None:
        html = b"<body><nav>Menu</nav><script>evil()</script><p>Body text</p></body>"
        results = await LocalMarkdownConverter().to_markdown([_doc(html)])
        data = results[0].data
        assert "Body text" in data
        assert "Menu" not in data
        assert "evil" not in data

    async def test_plain_text_passes_through(self) -> None:
        results = await LocalMarkdownConverter().to_markdown(
            [_doc(b"already plain", content_type="text/plain")]
        )
        assert results[0].data == "already plain"

    async def test_one_result_per_document(self) -> None:
        results = await LocalMarkdownConverter().to_markdown([_doc(), _doc()])
        assert len(results) == 2


# ---------------------------------------------------------------------------
# WorkersAIConverter
# ---------------------------------------------------------------------------


class TestWorkersAIConverter:
    def test_requires_credentials(self) -> None:
        with pytest.raises(ValueError):
            WorkersAIConverter(httpx.AsyncClient(), ConverterSettings(backend="workers_ai"))

    async def test_parses_envelope(self) -> None:
        with respx.mock:
            route = respx.post(TOMARKDOWN_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "success": True,
                        "result": [
                            {
                                "name": "foo.html",
                                "mimeType": "text/html",
                                "format": "markdown",
                                "tokens": 12,
                                "data": "# Foo",
                            }
                        ],
                    },
                )
            )
            async with httpx.AsyncClient() as client:
                results = await WorkersAIConverter(client, _workers_settings()).to_markdown([_doc()])
            request = route.calls.last.request
        assert request.headers["authorization"] == "Bearer secret"
        assert b'filename="foo.html"' in request.content
        assert len(results) == 1
        assert results[0].data == "# Foo"
        assert results[0].tokens == 12
        assert results[0].mime_type == "text/html"

    async def test_accepts_bare_list(self) -> None:
        with respx.mock:
            respx.post(TOMARKDOWN_URL).mock(
                return_value=httpx.Response(200, json=[{"name": "foo", "data": "# Foo"}])
            )
            async with httpx.AsyncClient() as client:
                results = await WorkersAIConverter(client, _workers_settings()).to_markdown([_doc()])
        assert results[0].data == "# Foo"

    @pytest.mark.parametrize(
        "payload",
        [
            {"success": False, "errors": [{"message": "quota"}]},
            {"success": True, "result": None},
            {"success": True, "result": [{"name": "foo", "format": "error", "error": "bad"}]},
            {"success": True, "result": [{"name": "foo"}]},
            {"success": True, "result": [{"name": "foo", "data": 123}]},
            {"success": True, "result": ["not-an-object"]},
        ],
    )
    async def test_malformed_answers_raise(self, payload: object) -> None:
        with respx.mock:
            respx.post(TOMARKDOWN_URL).mock(return_value=httpx.Response(200, json=payload))
            async with httpx.AsyncClient() as client:
                with pytest.raises(GatewayError) as exc_info:
                    await WorkersAIConverter(client, _workers_settings()).to_markdown([_doc()])
        assert exc_info.value.code == ErrorCode.CONVERSION_FAILED

    async def test_http_error_raises(self) -> None:
        with respx.mock:
            respx.post(TOMARKDOWN_URL).mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as client:
                with pytest.raises(GatewayError) as exc_info:
                    await WorkersAIConverter(client, _workers_settings()).to_markdown([_doc()])
        assert exc_info.value.code == ErrorCode.CONVERSION_FAILED
        assert exc_info.value.recoverable is True

    async def test_non_json_raises(self) -> None:
        with respx.mock:
            respx.post(TOMARKDOWN_URL).mock(return_value=httpx.Response(200, text="oops"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(GatewayError):
                    await WorkersAIConverter(client, _workers_settings()).to_markdown([_doc()])


class TestBuildConverter:
    def test_local_by_default(self) -> None:
        converter = build_converter(ConverterSettings(), httpx.AsyncClient())
        assert isinstance(converter, LocalMarkdownConverter)

    def test_workers_ai(self) -> None:
        converter = build_converter(_workers_settings(), httpx.AsyncClient())
        assert isinstance(converter, WorkersAIConverter)
