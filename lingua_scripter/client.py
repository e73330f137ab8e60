"""
Client for the streaming batch endpoint.

``RemoteBatchStream`` posts a batch to ``/api/translate-batch-stream`` and
exposes the plain-text response body as an async sequence of deltas, so the
same ``BatchStreamReconstructor`` that handles direct provider streams can
demultiplex it:

    >>> stream = RemoteBatchStream("http://127.0.0.1:5000", chapters, settings=settings)
    >>> reconstructor = BatchStreamReconstructor(chapters, stream)
"""

from typing import Any, AsyncIterator, Dict, Iterable, Optional, Sequence

import httpx

from lingua_scripter.config import CONNECT_TIMEOUT
from lingua_scripter.core.batch.markers import STREAM_ERROR_SENTINEL
from lingua_scripter.core.batch.models import (
    ChapterInput, CharacterEntry, GenerationSettings, GlossaryEntry
)
from lingua_scripter.core.llm.exceptions import ProviderError, StreamAbortedError
from lingua_scripter.core.llm.factory import API_KEY_FIELDS

STREAM_PATH = "/api/translate-batch-stream"


def settings_payload(settings: GenerationSettings) -> Dict[str, Any]:
    """Flat request fields for generation settings (the server's request format)"""
    payload = {
        'provider': settings.provider,
        'model': settings.model,
        'targetLanguage': settings.target_language,
        'sourceLanguage': settings.source_language,
        'systemInstruction': settings.system_instruction,
        'isAutoCharacterDetectionEnabled': settings.auto_detect_characters,
    }
    if settings.temperature is not None:
        payload['temperature'] = settings.temperature
    if settings.api_key:
        payload[API_KEY_FIELDS[settings.provider][0]] = settings.api_key
    if settings.endpoint:
        payload['openaiEndpoint'] = settings.endpoint
    if settings.route_providers:
        payload['openRouterModelProviders'] = settings.route_providers
    return payload


def _sentinel_prefix_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that could start the error sentinel"""
    for size in range(min(len(STREAM_ERROR_SENTINEL) - 1, len(text)), 0, -1):
        if STREAM_ERROR_SENTINEL.startswith(text[-size:]):
            return size
    return 0


class RemoteBatchStream:
    """
    Async delta source backed by a running translation server.

    The body is read with ``aiter_text()``. Text that might be the beginning of
    the ``[ERROR]`` sentinel is held back until the next read settles it; a
    sentinel ends the stream with ``ProviderError`` carrying the server's
    message.
    """

    def __init__(self, base_url: str, chapters: Sequence[ChapterInput],
                 glossary: Iterable[GlossaryEntry] = (),
                 characters: Iterable[CharacterEntry] = (),
                 settings: Optional[GenerationSettings] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = base_url.rstrip('/') + STREAM_PATH
        self.chapters = list(chapters)
        self.glossary = list(glossary)
        self.characters = list(characters)
        self.settings = settings or GenerationSettings()
        self._client = client

    def build_payload(self) -> Dict[str, Any]:
        payload = settings_payload(self.settings)
        payload['chapters'] = [
            {'id': chapter.chapter_id, 'title': chapter.title, 'originalText': chapter.source_text}
            for chapter in self.chapters
        ]
        payload['glossary'] = [entry.to_dict() for entry in self.glossary]
        payload['mentionedCharacters'] = [entry.to_dict() for entry in self.characters]
        return payload

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        client = self._client
        owns_client = client is None
        if owns_client:
            client = httpx.AsyncClient(timeout=httpx.Timeout(None, connect=CONNECT_TIMEOUT))

        try:
            try:
                async with client.stream("POST", self.url, json=self.build_payload()) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise ProviderError(self._error_message(response, response.text),
                                            status_code=response.status_code)

                    pending = ""
                    message = None
                    started = False
                    try:
                        async for text in response.aiter_text():
                            if message is not None:
                                message += text
                                continue

                            pending += text
                            if STREAM_ERROR_SENTINEL in pending:
                                head, _, message = pending.partition(STREAM_ERROR_SENTINEL)
                                pending = ""
                                if head:
                                    started = True
                                    yield head
                                continue

                            hold = _sentinel_prefix_length(pending)
                            ready, pending = pending[:len(pending) - hold], pending[len(pending) - hold:]
                            if ready:
                                started = True
                                yield ready
                    except httpx.HTTPError as e:
                        if started:
                            raise StreamAbortedError(f"Stream interrupted: {e}") from e
                        raise

                    if message is not None:
                        raise ProviderError(message.strip() or "Streaming translation failed")
                    if pending:
                        yield pending
            except httpx.HTTPError as e:
                raise ProviderError(f"Translation server unreachable at {self.url}: {e}") from e
        finally:
            if owns_client:
                await client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response, body: str) -> str:
        try:
            return response.json().get('error') or body
        except ValueError:
            return body or f"Translation server returned status {response.status_code}"


class RemoteBatchProvider:
    """
    Provider stand-in that sends a whole batch to a translation server.

    The server builds the prompts itself, so the prompts handed to
    ``stream`` are ignored. Lets ``BatchOrchestrator`` run against a server
    through its ``provider_factory``.
    """

    provider_name = "remote"

    def __init__(self, base_url: str, chapters: Sequence[ChapterInput],
                 glossary: Iterable[GlossaryEntry] = (),
                 characters: Iterable[CharacterEntry] = (),
                 settings: Optional[GenerationSettings] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url
        self.chapters = list(chapters)
        self.glossary = list(glossary)
        self.characters = list(characters)
        self.settings = settings
        self._client = client

    def stream(self, system_prompt: str, user_prompt: str,
               temperature: Optional[float] = None, json_mode: bool = False) -> AsyncIterator[str]:
        return RemoteBatchStream(self.base_url, self.chapters, self.glossary, self.characters,
                                 settings=self.settings, client=self._client).__aiter__()

    async def close(self):
        pass
