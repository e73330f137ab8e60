"""
Batch orchestrator.

Caller-facing state machine for one batch at a time:

    idle -> running -> completed | cancelled | error

The orchestrator builds the prompt, opens the provider stream, drives the
reconstructor, persists every completed chapter before pulling the next
event, and reports progress both as an async iterator and on its event bus.
"""

import asyncio
import inspect
from typing import Any, AsyncIterator, Callable, List, Optional

from lingua_scripter.core.llm.factory import create_provider_from_settings
from lingua_scripter.utils.unified_logger import get_logger, LogType
from .events import (
    Event, EventBus, EventType, create_chapter_status_event,
    create_persist_failed_event, create_batch_finished_event
)
from .exceptions import BatchAlreadyRunningError, PersistenceError
from .models import BatchProgress, BatchRequest, BatchState, ChapterStatus, ProgressUpdate
from .prompts import build_batch_prompts
from .reconstructor import BatchStreamReconstructor
from .stream_events import ChunkEvent, ChapterCompleteEvent, StreamErrorEvent, StreamDoneEvent

MISSING_MARKERS_WARNING = "Chapter markers not found in model output"


async def _resolve(value: Any) -> Any:
    """Await collaborator results that are awaitable, pass plain values through"""
    if inspect.isawaitable(value):
        return await value
    return value


class BatchOrchestrator:
    """
    Run batch translations and persist chapters as they complete.

    Collaborators may be plain or async callables:
        provider_factory(settings) -> StreamingProvider
        persist_chapter(chapter_id, translated_text) -> bool
        extract_characters(combined_source_text, target_language) -> list[CharacterEntry]
        add_characters(characters) -> int

    Example:
        >>> orchestrator = BatchOrchestrator(persist_chapter=store.persist_chapter_translation)
        >>> async for update in orchestrator.run(request):
        ...     print(update.to_dict())
    """

    def __init__(self,
                 persist_chapter: Callable,
                 provider_factory: Callable = create_provider_from_settings,
                 extract_characters: Optional[Callable] = None,
                 add_characters: Optional[Callable] = None,
                 event_bus: Optional[EventBus] = None,
                 batch_id: Optional[str] = None):
        self.persist_chapter = persist_chapter
        self.provider_factory = provider_factory
        self.extract_characters = extract_characters
        self.add_characters = add_characters
        self.event_bus = event_bus or EventBus()
        self.batch_id = batch_id

        self.state = BatchState.IDLE
        self.progress: Optional[BatchProgress] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self.logger = get_logger()

    # === Subscription ===

    def subscribe(self, callback: Callable[[ProgressUpdate], None]) -> Callable[[], None]:
        """
        Receive every ProgressUpdate of every batch run by this orchestrator.

        Returns:
            A function that removes the subscription
        """
        def listener(event: Event):
            callback(ProgressUpdate.from_dict(event.data))

        self.event_bus.subscribe(EventType.CHAPTER_STATUS_CHANGED, listener)
        return lambda: self.event_bus.unsubscribe(EventType.CHAPTER_STATUS_CHANGED, listener)

    def _emit(self, update: ProgressUpdate) -> ProgressUpdate:
        self.event_bus.publish(create_chapter_status_event(update.to_dict(), self.batch_id))
        return update

    def _publish_finished(self, event_type: EventType):
        event = create_batch_finished_event(
            event_type,
            completed_count=self.progress.completed_count,
            total=self.progress.total,
            error=self.progress.error
        )
        event.data["charactersFound"] = self.progress.characters_found
        self.event_bus.publish(event)

        failed = [chapter_id for chapter_id, status in self.progress.statuses.items()
                  if status == ChapterStatus.ERROR]
        self.logger.info(f"Batch {self.state.value}", LogType.BATCH_END, {
            'state': self.state.value,
            'completed': self.progress.completed_count,
            'total': self.progress.total,
            'failed': len(failed),
            'error': self.progress.error
        })

    # === Control ===

    @property
    def is_running(self) -> bool:
        return self.state == BatchState.RUNNING

    def cancel(self) -> bool:
        """
        Stop the running batch.

        Chapters already persisted are kept; the in-flight chapter keeps its
        status. Must be called from the event loop running the batch.

        Returns:
            True if a running batch was cancelled
        """
        if self.state != BatchState.RUNNING:
            return False
        self.state = BatchState.CANCELLED
        if self._cancel_event is not None:
            self._cancel_event.set()
        self.logger.info("Batch cancellation requested")
        return True

    def acknowledge(self):
        """Clear the finished batch's progress and return to idle"""
        if self.state == BatchState.RUNNING:
            raise BatchAlreadyRunningError("Cannot acknowledge a batch that is still running")
        self.progress = None
        self.state = BatchState.IDLE

    async def start_batch(self, request: BatchRequest) -> BatchProgress:
        """Run a batch to the end and return its final progress"""
        async for _ in self.run(request):
            pass
        return self.progress

    # === Event handling ===

    def _on_chunk(self, request: BatchRequest, event: ChunkEvent) -> Optional[ProgressUpdate]:
        if event.chapter_index is None:
            return None

        chapter_id = request.chapter_at(event.chapter_index).chapter_id
        self.progress.statuses[chapter_id] = ChapterStatus.TRANSLATING
        self.progress.current_chapter_id = chapter_id
        self.progress.streaming_text = event.streaming_text

        return self._emit(ProgressUpdate(
            chapter_id=chapter_id,
            status=ChapterStatus.TRANSLATING,
            streaming_text=event.streaming_text,
            completed_count=self.progress.completed_count
        ))

    async def _persist(self, chapter_id: str, text: str):
        try:
            saved = await _resolve(self.persist_chapter(chapter_id, text))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(chapter_id, str(e)) from e
        if not saved:
            raise PersistenceError(chapter_id, "the store rejected the write")

    async def _on_chapter_complete(self, event: ChapterCompleteEvent) -> ProgressUpdate:
        chapter_id = event.chapter_id
        if self.progress.current_chapter_id == chapter_id:
            self.progress.current_chapter_id = None
            self.progress.streaming_text = ""

        try:
            await self._persist(chapter_id, event.full_text)
        except PersistenceError as e:
            self.progress.statuses[chapter_id] = ChapterStatus.ERROR
            self.progress.warnings[chapter_id] = str(e)
            self.logger.warning(str(e), LogType.ERROR_DETAIL, {'chapter_id': chapter_id, 'details': e.reason})
            self.event_bus.publish(create_persist_failed_event(chapter_id, e.reason))
            return self._emit(ProgressUpdate(
                chapter_id=chapter_id,
                status=ChapterStatus.ERROR,
                completed_count=self.progress.completed_count
            ))

        self.progress.completed_count += 1
        self.progress.statuses[chapter_id] = ChapterStatus.COMPLETED
        self.logger.info(f"Chapter {chapter_id} translated", LogType.CHAPTER_COMPLETE, {
            'chapter_index': event.chapter_index,
            'chapter_id': chapter_id,
            'completed': self.progress.completed_count,
            'total': self.progress.total,
            'fallback': event.fallback
        })
        return self._emit(ProgressUpdate(
            chapter_id=chapter_id,
            status=ChapterStatus.COMPLETED,
            completed_count=self.progress.completed_count
        ))

    def _fail(self, message: str) -> List[ProgressUpdate]:
        """Move the batch to error; every chapter not completed becomes error"""
        self.state = BatchState.ERROR
        self.progress.error = message
        self.progress.current_chapter_id = None
        self.progress.streaming_text = ""

        updates = []
        for chapter_id in self.progress.chapter_ids:
            status = self.progress.statuses[chapter_id]
            if status in (ChapterStatus.COMPLETED, ChapterStatus.ERROR):
                continue
            self.progress.statuses[chapter_id] = ChapterStatus.ERROR
            updates.append(self._emit(ProgressUpdate(
                chapter_id=chapter_id,
                status=ChapterStatus.ERROR,
                completed_count=self.progress.completed_count
            )))

        self.logger.error(message, LogType.ERROR_DETAIL, {'details': message})
        self._publish_finished(EventType.BATCH_FAILED)
        return updates

    def _note_missing(self, request: BatchRequest, missing):
        """Warn about chapters whose markers never closed; their status is left as it was"""
        for index in missing:
            chapter_id = request.chapter_at(index).chapter_id
            self.progress.warnings[chapter_id] = MISSING_MARKERS_WARNING
        self.progress.current_chapter_id = None
        self.progress.streaming_text = ""

    async def _run_character_extraction(self, request: BatchRequest):
        """Best-effort: failures are logged and never change the batch outcome"""
        settings = request.settings
        if not settings.auto_detect_characters or self.extract_characters is None:
            return
        if self.progress.completed_count == 0:
            self.logger.debug("Skipping character analysis, no chapter was translated")
            return

        try:
            characters = await _resolve(self.extract_characters(
                request.combined_source_text(), settings.target_language
            ))
            characters = list(characters or [])
            if characters and self.add_characters is not None:
                await _resolve(self.add_characters(characters))
        except Exception as e:
            self.logger.warning(f"Character analysis failed: {e}")
            return

        self.progress.characters_found = len(characters)
        self.event_bus.publish(Event(
            type=EventType.CHARACTERS_EXTRACTED,
            data={
                'count': len(characters),
                'names': [character.name for character in characters]
            },
            source="batch_orchestrator"
        ))

    # === Main loop ===

    async def run(self, request: BatchRequest) -> AsyncIterator[ProgressUpdate]:
        """
        Run a batch, yielding a ProgressUpdate for every status change.

        Raises:
            BatchAlreadyRunningError: Another batch is running on this orchestrator
        """
        if self.state == BatchState.RUNNING:
            raise BatchAlreadyRunningError("A batch translation is already running")

        self.state = BatchState.RUNNING
        self.progress = BatchProgress.for_request(request)
        self._cancel_event = asyncio.Event()
        settings = request.settings

        self.logger.info("Batch started", LogType.BATCH_START, {
            'total_chapters': len(request),
            'model': settings.model,
            'provider': settings.provider,
            'target_language': settings.target_language,
            'glossary_terms': len(request.glossary),
            'characters': len(request.characters)
        })
        self.event_bus.publish(Event(
            type=EventType.BATCH_STARTED,
            data={'total': len(request), 'chapterIds': list(self.progress.chapter_ids)},
            source="batch_orchestrator"
        ))

        provider = None
        events = None
        try:
            system_prompt, user_prompt = build_batch_prompts(request)
            provider = await _resolve(self.provider_factory(settings))
            deltas = provider.stream(system_prompt, user_prompt, temperature=settings.temperature)
            reconstructor = BatchStreamReconstructor(request.chapters, deltas, self._cancel_event)
            events = reconstructor.events()

            async for event in events:
                if isinstance(event, ChunkEvent):
                    update = self._on_chunk(request, event)
                    if update is not None:
                        yield update
                elif isinstance(event, ChapterCompleteEvent):
                    yield await self._on_chapter_complete(event)
                elif isinstance(event, StreamErrorEvent):
                    for update in self._fail(event.message):
                        yield update
                elif isinstance(event, StreamDoneEvent):
                    self._note_missing(request, event.missing)
                    self.state = BatchState.COMPLETED
                    await self._run_character_extraction(request)
                    self._publish_finished(EventType.BATCH_COMPLETED)

        except Exception as e:
            if self.state == BatchState.RUNNING:
                self._fail(str(e))
            raise
        finally:
            if events is not None:
                await events.aclose()
            if provider is not None:
                await provider.close()
            # Consumer stopped early or its task was cancelled
            if self.state == BatchState.RUNNING:
                self.state = BatchState.CANCELLED
                self._cancel_event.set()
            if self.state == BatchState.CANCELLED:
                self._publish_finished(EventType.BATCH_CANCELLED)
