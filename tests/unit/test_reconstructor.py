"""Unit tests for the batch stream reconstructor."""

import asyncio

import pytest

from lingua_scripter.core.batch.markers import strip_markers
from lingua_scripter.core.batch.models import ChapterInput
from lingua_scripter.core.batch.reconstructor import BatchStreamReconstructor
from lingua_scripter.core.batch.stream_events import (
    ChapterCompleteEvent, ChunkEvent, StreamDoneEvent, StreamErrorEvent
)
from lingua_scripter.core.llm.exceptions import StreamAbortedError
from conftest import FakeProvider, async_iter, collect, split_every


def completions(events):
    return [(e.chapter_index, e.chapter_id, e.full_text) for e in events if isinstance(e, ChapterCompleteEvent)]


class TestReconstruction:
    """Test chapter demultiplexing."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 3, 7, 64, 10000])
    async def test_same_chapters_for_any_split(self, chapters, marked_output, size):
        reconstructor = BatchStreamReconstructor(chapters, async_iter(split_every(marked_output, size)))
        events = await collect(reconstructor.events())

        assert completions(events) == [
            (1, "c1", "Lin Feng ouvrit la porte."),
            (2, "c2", "L'Épée d'Azur brillait."),
            (3, "c3", "La nuit tomba."),
        ]
        assert events[-1] == StreamDoneEvent(missing=())
        assert reconstructor.raw_output == marked_output

        chunks = [e for e in events if isinstance(e, ChunkEvent)]
        assert "".join(c.raw_text for c in chunks) == marked_output
        assert "".join(c.text for c in chunks) == strip_markers(marked_output)

    @pytest.mark.asyncio
    async def test_chunk_precedes_completions_it_triggers(self, chapters, marked_output):
        reconstructor = BatchStreamReconstructor(chapters, async_iter([marked_output]))
        events = await collect(reconstructor.events())

        assert isinstance(events[0], ChunkEvent)
        assert events[0].chapter_index == 3
        assert [type(e) for e in events[1:]] == [
            ChapterCompleteEvent, ChapterCompleteEvent, ChapterCompleteEvent, StreamDoneEvent
        ]

    @pytest.mark.asyncio
    async def test_chunk_attribution(self):
        chapters = [ChapterInput("a", "x"), ChapterInput("b", "y")]
        deltas = ["[CHAPTER_1_START]un", " deux[CHAPTER_1_END]", "\n\n", "[CHAPTER_2_START]trois", "[CHAPTER_2_END]"]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(deltas)).events())

        chunks = [e for e in events if isinstance(e, ChunkEvent)]
        assert [c.chapter_index for c in chunks] == [1, 1, None, 2, 2]
        assert [c.streaming_text for c in chunks] == ["un", "un deux", "", "trois", "trois"]
        assert chunks[0].text == "un"
        assert chunks[0].raw_text == "[CHAPTER_1_START]un"

    @pytest.mark.asyncio
    async def test_markers_split_across_deltas_never_reach_chunk_text(self):
        chapters = [ChapterInput("a", "x")]
        deltas = ["[CHAPTER_1_", "START]Hi[CHAPTER", "_1_END]"]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(deltas)).events())

        chunks = [e for e in events if isinstance(e, ChunkEvent)]
        assert [c.text for c in chunks] == ["", "Hi", ""]
        assert [c.raw_text for c in chunks] == deltas
        assert completions(events) == [(1, "a", "Hi")]

    @pytest.mark.asyncio
    async def test_bracket_that_is_not_a_marker_is_released(self):
        chapters = [ChapterInput("a", "x")]
        deltas = ["[CHAPTER_1_START]see [CHA", "RLIE] and [note]", "[CHAPTER_1_END]"]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(deltas)).events())

        chunks = [e for e in events if isinstance(e, ChunkEvent)]
        assert [c.text for c in chunks] == ["see ", "[CHARLIE] and [note]", ""]

    @pytest.mark.asyncio
    async def test_order_of_events(self):
        chapters = [ChapterInput("a", "x"), ChapterInput("b", "y")]
        deltas = ["[CHAPTER_1_START]un[CHAPTER_1_END][CHAPTER_2_START]", "deux[CHAPTER_2_END]"]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(deltas)).events())

        assert [type(e).__name__ for e in events] == [
            "ChunkEvent", "ChapterCompleteEvent", "ChunkEvent", "ChapterCompleteEvent", "StreamDoneEvent"
        ]

    @pytest.mark.asyncio
    async def test_empty_deltas_are_ignored(self):
        chapters = [ChapterInput("a", "x")]
        deltas = ["", "[CHAPTER_1_START]ok[CHAPTER_1_END]", ""]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(deltas)).events())

        assert len([e for e in events if isinstance(e, ChunkEvent)]) == 1

    def test_requires_chapters(self):
        with pytest.raises(ValueError):
            BatchStreamReconstructor([], async_iter([]))


class TestMissingMarkers:
    """Test outputs that lose their markers."""

    @pytest.mark.asyncio
    async def test_single_chapter_fallback(self):
        chapters = [ChapterInput("only", "text")]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(["Just a ", "translation."])).events())

        complete = [e for e in events if isinstance(e, ChapterCompleteEvent)]
        assert complete == [ChapterCompleteEvent(1, "only", "Just a translation.", fallback=True)]
        assert events[-1] == StreamDoneEvent(missing=())

    @pytest.mark.asyncio
    async def test_single_chapter_empty_output(self):
        chapters = [ChapterInput("only", "text")]
        events = await collect(BatchStreamReconstructor(chapters, async_iter(["  "])).events())

        assert completions(events) == []
        assert events[-1] == StreamDoneEvent(missing=(1,))

    @pytest.mark.asyncio
    async def test_no_fallback_for_multiple_chapters(self, chapters):
        events = await collect(BatchStreamReconstructor(chapters, async_iter(["No markers at all"])).events())

        assert completions(events) == []
        assert events[-1] == StreamDoneEvent(missing=(1, 2, 3))

    @pytest.mark.asyncio
    async def test_partially_marked_output(self, chapters):
        output = "[CHAPTER_1_START]un[CHAPTER_1_END][CHAPTER_2_START]deux sans fin"
        events = await collect(BatchStreamReconstructor(chapters, async_iter([output])).events())

        assert completions(events) == [(1, "c1", "un")]
        assert events[-1] == StreamDoneEvent(missing=(2, 3))


class TestFailureAndCancellation:
    """Test terminal errors and cancellation."""

    @pytest.mark.asyncio
    async def test_provider_error_ends_stream(self, chapters):
        provider = FakeProvider(["[CHAPTER_1_START]un[CHAPTER_1_END]", "[CHAPTER_2_START]de"],
                                error=StreamAbortedError("connection reset"))
        events = await collect(BatchStreamReconstructor(chapters, provider.stream("s", "u")).events())

        assert completions(events) == [(1, "c1", "un")]
        assert events[-1] == StreamErrorEvent(message="connection reset")
        assert not any(isinstance(e, StreamDoneEvent) for e in events)

    @pytest.mark.asyncio
    async def test_cancel_while_waiting_for_upstream(self, chapters):
        provider = FakeProvider(["[CHAPTER_1_START]un", "never delivered"], block_after=1)
        reconstructor = BatchStreamReconstructor(chapters, provider.stream("s", "u"))
        events = []

        async def consume():
            async for event in reconstructor.events():
                events.append(event)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        assert len(events) == 1

        reconstructor.cancel()
        await asyncio.wait_for(task, timeout=1)

        assert len(events) == 1
        assert provider.stream_closed
        assert reconstructor.cancelled

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, chapters, marked_output):
        reconstructor = BatchStreamReconstructor(chapters, async_iter([marked_output]))
        reconstructor.cancel()

        assert await collect(reconstructor.events()) == []

    @pytest.mark.asyncio
    async def test_shared_cancel_event(self, chapters):
        cancel_event = asyncio.Event()
        provider = FakeProvider(["[CHAPTER_1_START]un"], block_after=1)
        reconstructor = BatchStreamReconstructor(chapters, provider.stream("s", "u"), cancel_event)

        task = asyncio.create_task(collect(reconstructor.events()))
        await asyncio.sleep(0.05)
        cancel_event.set()
        events = await asyncio.wait_for(task, timeout=1)

        assert [type(e) for e in events] == [ChunkEvent]
        assert provider.stream_closed
