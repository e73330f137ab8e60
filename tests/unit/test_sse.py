"""Unit tests for SSE parsing of chat completion streams."""

import json

import httpx
import pytest

from lingua_scripter.core.llm.providers import DeepSeekProvider
from lingua_scripter.core.llm.utils.sse import parse_sse_line, is_done_line


def sse(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}, ensure_ascii=False) + "\n"


class TestParseSSELine:
    """Test single-line parsing."""

    def test_content_delta(self):
        assert parse_sse_line(sse("Bonjour").strip()) == "Bonjour"

    def test_ignores_non_data_lines(self):
        assert parse_sse_line(": keep-alive") is None
        assert parse_sse_line("event: message") is None
        assert parse_sse_line("") is None

    def test_done_sentinel(self):
        assert parse_sse_line("data: [DONE]") is None
        assert is_done_line("data: [DONE]")
        assert not is_done_line(sse("[DONE]"))

    def test_malformed_json_is_skipped(self):
        assert parse_sse_line("data: {not json") is None

    def test_missing_or_empty_content(self):
        assert parse_sse_line('data: {"choices":[{"delta":{"role":"assistant"}}]}') is None
        assert parse_sse_line('data: {"choices":[{"delta":{"content":""}}]}') is None
        assert parse_sse_line('data: {"choices":[]}') is None

    def test_literal_done_as_content(self):
        """Content that happens to be "[DONE]" is still content."""
        assert parse_sse_line(sse("[DONE]").strip()) == "[DONE]"


def chunked_body(data, size):
    async def gen():
        for i in range(0, len(data), size):
            yield data[i:i + size]
    return gen()


async def stream_body(body, size):
    """Run a DeepSeek provider over a mocked event stream delivered in ``size``-byte reads"""
    def handler(request):
        return httpx.Response(200, headers={"content-type": "text/event-stream"},
                              content=chunked_body(body, size))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = DeepSeekProvider(api_key="sk-test", client=client)
    try:
        return [delta async for delta in provider.stream("system", "user")]
    finally:
        await provider.close()


class TestEventStreamReads:
    """Test SSE parsing across arbitrary read boundaries of the response body."""

    @pytest.mark.asyncio
    async def test_line_split_across_reads(self):
        assert await stream_body(sse("Hello").encode("utf-8"), size=10) == ["Hello"]

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_reads(self):
        body = sse("日本語").encode("utf-8")
        # First read ends inside the first three-byte character
        cut = body.index("日".encode("utf-8")) + 1

        assert await stream_body(body, size=cut) == ["日本語"]

    @pytest.mark.asyncio
    async def test_every_byte_separately(self):
        body = (sse("Ça va") + sse(" très bien") + "data: [DONE]\n").encode("utf-8")

        assert "".join(await stream_body(body, size=1)) == "Ça va très bien"

    @pytest.mark.asyncio
    async def test_stops_at_done(self):
        body = (sse("a") + "data: [DONE]\n" + sse("ignored")).encode("utf-8")

        assert await stream_body(body, size=5) == ["a"]

    @pytest.mark.asyncio
    async def test_unterminated_last_line(self):
        body = sse("tail").rstrip("\n").encode("utf-8")

        assert await stream_body(body, size=4) == ["tail"]

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        body = (sse("x") + sse("y")).replace("\n", "\r\n").encode("utf-8")

        assert await stream_body(body, size=3) == ["x", "y"]
