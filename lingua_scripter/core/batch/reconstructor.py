"""
Batch stream reconstructor.

Consumes the provider's delta stream and demultiplexes it into ordered
stream events: one ``ChunkEvent`` per delta, a ``ChapterCompleteEvent`` the
first time a chapter's end marker arrives, and a single terminal event
(``StreamErrorEvent`` or ``StreamDoneEvent``). Nothing is emitted once the
run has been cancelled.
"""

import asyncio
from typing import AsyncIterable, AsyncIterator, Optional, Sequence, Union

import httpx

from lingua_scripter.core.llm.exceptions import ProviderError
from lingua_scripter.utils.unified_logger import debug, warning, error
from .markers import MarkerScanner
from .models import ChapterInput
from .stream_events import ChunkEvent, ChapterCompleteEvent, StreamErrorEvent, StreamDoneEvent

StreamEvent = Union[ChunkEvent, ChapterCompleteEvent, StreamErrorEvent, StreamDoneEvent]

_EXHAUSTED = object()


class _StreamCancelled(Exception):
    pass


class BatchStreamReconstructor:
    """
    Turn an undifferentiated delta stream into per-chapter events.

    Chunk attribution is computed after the delta's start markers are
    registered and before its completions are applied, and the chunk event
    always precedes the completions it triggers.

    Example:
        >>> reconstructor = BatchStreamReconstructor(chapters, provider.stream(system, user))
        >>> async for event in reconstructor.events():
        ...     handle(event)
    """

    def __init__(self, chapters: Sequence[ChapterInput], deltas: AsyncIterable[str],
                 cancel_event: Optional[asyncio.Event] = None):
        """
        Args:
            chapters: Batch chapters in marker order (index 1 is chapters[0])
            deltas: Async source of text deltas (a provider stream)
            cancel_event: Shared cancellation signal, created when omitted
        """
        if not chapters:
            raise ValueError("A batch needs at least one chapter")
        self.chapters = list(chapters)
        self.scanner = MarkerScanner(len(self.chapters))
        self.cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self._deltas = deltas
        self._clean_length = 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        """Stop the run; the pending upstream read is abandoned and the connection closed"""
        self.cancel_event.set()

    @property
    def raw_output(self) -> str:
        return self.scanner.buffer

    @staticmethod
    async def _pull(iterator: AsyncIterator[str]):
        try:
            return await iterator.__anext__()
        except StopAsyncIteration:
            return _EXHAUSTED

    async def _next_delta(self, iterator: AsyncIterator[str]):
        """Wait for the next delta or for cancellation, whichever comes first"""
        next_task = asyncio.ensure_future(self._pull(iterator))
        cancel_task = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await asyncio.wait({next_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not next_task.done():
                # Propagates CancelledError into the provider, closing the response
                next_task.cancel()
                await asyncio.wait({next_task})

        if self.cancelled:
            if not next_task.cancelled():
                next_task.exception()
            raise _StreamCancelled()
        return next_task.result()

    def _complete_event(self, index: int, text: str, fallback: bool = False) -> ChapterCompleteEvent:
        return ChapterCompleteEvent(
            chapter_index=index,
            chapter_id=self.chapters[index - 1].chapter_id,
            full_text=text,
            fallback=fallback
        )

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Async generator of stream events.

        Yields:
            ChunkEvent, ChapterCompleteEvent, then exactly one StreamErrorEvent or
            StreamDoneEvent unless the run was cancelled
        """
        iterator = self._deltas.__aiter__()
        try:
            while True:
                if self.cancelled:
                    return

                try:
                    delta = await self._next_delta(iterator)
                except _StreamCancelled:
                    debug("Batch stream cancelled, upstream connection closed")
                    return
                except (ProviderError, httpx.HTTPError) as e:
                    error(f"Batch stream failed: {e}")
                    yield StreamErrorEvent(message=str(e))
                    return

                if delta is _EXHAUSTED:
                    break
                if not delta:
                    continue

                self.scanner.append(delta)
                clean = self.scanner.clean_output()
                chunk_text, self._clean_length = clean[self._clean_length:], len(clean)
                chapter_index = self.scanner.current_chapter()
                streaming_text = self.scanner.streaming_text(chapter_index) if chapter_index else ""
                completions = self.scanner.scan()

                yield ChunkEvent(
                    chapter_index=chapter_index,
                    text=chunk_text,
                    raw_text=delta,
                    streaming_text=streaming_text
                )

                for index, text in completions:
                    if self.cancelled:
                        return
                    yield self._complete_event(index, text)

            for index, text in self.scanner.scan():
                yield self._complete_event(index, text)

            if len(self.chapters) == 1 and not self.scanner.any_marker_matched():
                fallback_text = self.scanner.fallback_text()
                if fallback_text:
                    warning("Chapter markers not found in single-chapter output, using full response")
                    self.scanner.extracted[1] = fallback_text
                    yield self._complete_event(1, fallback_text, fallback=True)

            missing = self.scanner.missing()
            if missing:
                missing_ids = [self.chapters[index - 1].chapter_id for index in missing]
                warning(f"Chapter markers missing from model output for chapters {missing} "
                        f"({', '.join(missing_ids)})")

            yield StreamDoneEvent(missing=tuple(missing))

        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
