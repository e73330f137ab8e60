"""
Event system for batch translation observability.

Provides decoupled event publishing and subscription so the web socket, the
CLI and tests can follow a batch without the orchestrator knowing about them.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import time
import traceback

from lingua_scripter.utils.unified_logger import warning


class EventType(Enum):
    """Batch pipeline event types."""

    # Batch lifecycle
    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"
    BATCH_FAILED = "batch_failed"
    BATCH_CANCELLED = "batch_cancelled"

    # Chapter-level events
    CHAPTER_STATUS_CHANGED = "chapter_status_changed"
    CHAPTER_PERSIST_FAILED = "chapter_persist_failed"

    # Post-batch enrichment
    CHARACTERS_EXTRACTED = "characters_extracted"


@dataclass
class Event:
    """Batch pipeline event.

    Attributes:
        type: Event type
        data: Event-specific data dictionary
        timestamp: Unix timestamp when event occurred
        source: Optional source identifier (e.g., "batch_orchestrator")
    """
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    source: str = "unknown"


class EventBus:
    """Central event bus for the batch pipeline."""

    def __init__(self):
        """Initialize event bus."""
        self._listeners: Dict[EventType, List[Callable]] = {}
        self._history: List[Event] = []
        self._record_history = False

    def subscribe(self, event_type: EventType, callback: Callable[[Event], None]) -> None:
        """Subscribe to an event type.

        Args:
            event_type: Type of event to listen for
            callback: Function to call when event occurs (receives Event object)
        """
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        self._listeners[event_type].append(callback)

    def subscribe_multiple(
        self,
        event_types: List[EventType],
        callback: Callable[[Event], None]
    ) -> None:
        """Subscribe to multiple event types with same callback."""
        for event_type in event_types:
            self.subscribe(event_type, callback)

    def unsubscribe(self, event_type: EventType, callback: Callable) -> None:
        """Unsubscribe from an event type.

        Args:
            event_type: Event type
            callback: Previously registered callback
        """
        if event_type in self._listeners:
            try:
                self._listeners[event_type].remove(callback)
            except ValueError:
                pass  # Callback not found

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers.

        Listener failures are logged and never reach the publisher.

        Args:
            event: Event to publish
        """
        if self._record_history:
            self._history.append(event)

        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception as e:
                warning(f"Event listener failed for {event.type.value}: {e}")
                traceback.print_exc()

    def enable_history(self) -> None:
        """Enable event history recording."""
        self._record_history = True

    def disable_history(self) -> None:
        """Disable event history recording."""
        self._record_history = False

    def get_history(self) -> List[Event]:
        """Get recorded event history.

        Returns:
            List of events in chronological order
        """
        return self._history.copy()

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()

    def get_events_by_type(self, event_type: EventType) -> List[Event]:
        """Get all events of a specific type from history."""
        return [e for e in self._history if e.type == event_type]


# === Convenience Event Builders ===

def create_chapter_status_event(update: Dict[str, Any], batch_id: Optional[str] = None) -> Event:
    """Create a chapter progress event from a ProgressUpdate dict.

    Args:
        update: ``ProgressUpdate.to_dict()`` payload
        batch_id: Optional batch identifier

    Returns:
        Event object
    """
    data = dict(update)
    if batch_id:
        data["batchId"] = batch_id
    return Event(
        type=EventType.CHAPTER_STATUS_CHANGED,
        data=data,
        source="batch_orchestrator"
    )


def create_persist_failed_event(chapter_id: str, reason: str) -> Event:
    """Create a persistence failure event.

    Args:
        chapter_id: Chapter whose translation could not be stored
        reason: Failure description

    Returns:
        Event object
    """
    return Event(
        type=EventType.CHAPTER_PERSIST_FAILED,
        data={
            "chapterId": chapter_id,
            "reason": reason
        },
        source="batch_orchestrator"
    )


def create_batch_finished_event(
    event_type: EventType,
    completed_count: int,
    total: int,
    error: Optional[str] = None
) -> Event:
    """Create a terminal batch event (completed, failed or cancelled).

    Args:
        event_type: One of the terminal batch event types
        completed_count: Chapters persisted by the batch
        total: Chapters in the batch
        error: Error message for failed batches

    Returns:
        Event object
    """
    data = {
        "completedCount": completed_count,
        "total": total
    }
    if error is not None:
        data["error"] = error
    return Event(type=event_type, data=data, source="batch_orchestrator")
