"""Unit tests for the remote batch stream client."""

import json

import httpx
import pytest

from lingua_scripter.client import RemoteBatchProvider, RemoteBatchStream, settings_payload
from lingua_scripter.core.batch.models import ChapterInput, GenerationSettings, GlossaryEntry
from lingua_scripter.core.batch.reconstructor import BatchStreamReconstructor
from lingua_scripter.core.batch.stream_events import ChapterCompleteEvent, StreamErrorEvent
from lingua_scripter.core.llm.exceptions import ProviderError


def chunked(*parts):
    async def gen():
        for part in parts:
            yield part.encode("utf-8") if isinstance(part, str) else part
    return gen()


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def text_response(*parts):
    return httpx.Response(200, headers={"content-type": "text/plain; charset=utf-8"}, content=chunked(*parts))


CHAPTERS = [ChapterInput("c1", "Hello", "One")]
SETTINGS = GenerationSettings(provider="deepseek", model="deepseek-chat", api_key="sk-test",
                              target_language="French")


async def collect(stream):
    return [delta async for delta in stream]


class TestSettingsPayload:
    """Test request field mapping."""

    def test_provider_key_field(self):
        payload = settings_payload(SETTINGS)

        assert payload["deepseekApiKey"] == "sk-test"
        assert payload["provider"] == "deepseek"
        assert payload["targetLanguage"] == "French"
        assert "temperature" not in payload

    def test_gemini_key_field(self):
        payload = settings_payload(GenerationSettings(provider="gemini", api_key="AIza", temperature=0.2))

        assert payload["apiKey"] == "AIza"
        assert payload["temperature"] == 0.2


class TestRemoteBatchStream:
    """Test decoding of the streamed body."""

    @pytest.mark.asyncio
    async def test_posts_batch_and_yields_text(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["payload"] = json.loads(request.content)
            return text_response("[CHAPTER_1_START]\nBon", "jour\n[CHAPTER_1_END]")

        stream = RemoteBatchStream("http://server:5000/", CHAPTERS, glossary=[GlossaryEntry("Hi", "Salut")],
                                   settings=SETTINGS, client=mock_client(handler))

        text = "".join(await collect(stream))

        assert text == "[CHAPTER_1_START]\nBonjour\n[CHAPTER_1_END]"
        assert captured["url"] == "http://server:5000/api/translate-batch-stream"
        assert captured["payload"]["chapters"] == [{"id": "c1", "title": "One", "originalText": "Hello"}]
        assert captured["payload"]["glossary"] == [{"original": "Hi", "translation": "Salut"}]

    @pytest.mark.asyncio
    async def test_multibyte_split(self):
        data = "第一章".encode("utf-8")
        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS,
                                   client=mock_client(lambda r: text_response(data[:1], data[1:4], data[4:])))

        assert "".join(await collect(stream)) == "第一章"

    @pytest.mark.asyncio
    async def test_error_sentinel_split_across_reads(self):
        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS,
                                   client=mock_client(lambda r: text_response("partial [ERR", "OR]quota ", "exceeded")))
        deltas = []

        with pytest.raises(ProviderError, match="quota exceeded"):
            async for delta in stream:
                deltas.append(delta)

        assert "".join(deltas) == "partial "

    @pytest.mark.asyncio
    async def test_bracket_that_is_not_the_sentinel(self):
        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS,
                                   client=mock_client(lambda r: text_response("a [", "b] c [E")))

        assert "".join(await collect(stream)) == "a [b] c [E"

    @pytest.mark.asyncio
    async def test_http_error_response(self):
        def handler(request):
            return httpx.Response(400, json={"error": "chapters array is required"})

        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS, client=mock_client(handler))

        with pytest.raises(ProviderError, match="chapters array is required") as exc_info:
            await collect(stream)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_server_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS, client=mock_client(handler))

        with pytest.raises(ProviderError, match="unreachable"):
            await collect(stream)

    @pytest.mark.asyncio
    async def test_feeds_the_reconstructor(self):
        client = mock_client(lambda r: text_response("[CHAPTER_1_START]Bon", "jour[CHAPTER_1_END]"))
        provider = RemoteBatchProvider("http://s", CHAPTERS, settings=SETTINGS, client=client)

        events = [e async for e in BatchStreamReconstructor(CHAPTERS, provider.stream("", "")).events()]

        complete = [e for e in events if isinstance(e, ChapterCompleteEvent)]
        assert [(e.chapter_id, e.full_text) for e in complete] == [("c1", "Bonjour")]

    @pytest.mark.asyncio
    async def test_server_error_becomes_stream_error_event(self):
        client = mock_client(lambda r: text_response("[CHAPTER_1_START]Bon", "[ERROR]Invalid API key"))
        stream = RemoteBatchStream("http://s", CHAPTERS, settings=SETTINGS, client=client)

        events = [e async for e in BatchStreamReconstructor(CHAPTERS, stream).events()]

        assert events[-1] == StreamErrorEvent(message="Invalid API key")
