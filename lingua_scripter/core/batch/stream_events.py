"""
Events emitted by the batch stream reconstructor.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class StreamEventType(Enum):
    CHUNK = "chunk"
    CHAPTER_COMPLETE = "chapter_complete"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class ChunkEvent:
    """
    One upstream delta.

    Attributes:
        chapter_index: Chapter the delta belongs to, None between chapters
        text: What this delta adds to the marker-free output (a marker split
            across deltas is removed once it completes)
        raw_text: Delta exactly as received
        streaming_text: Cumulative clean text of the attributed chapter
    """
    chapter_index: Optional[int]
    text: str
    raw_text: str
    streaming_text: str = ""
    type: StreamEventType = StreamEventType.CHUNK


@dataclass(frozen=True)
class ChapterCompleteEvent:
    """A chapter's end marker arrived (or the unmarked single-chapter fallback applied)"""
    chapter_index: int
    chapter_id: str
    full_text: str
    fallback: bool = False
    type: StreamEventType = StreamEventType.CHAPTER_COMPLETE


@dataclass(frozen=True)
class StreamErrorEvent:
    """Terminal: the provider failed"""
    message: str
    type: StreamEventType = StreamEventType.ERROR


@dataclass(frozen=True)
class StreamDoneEvent:
    """Terminal: the stream ended normally; ``missing`` lists unmatched chapter indices"""
    missing: Tuple[int, ...] = ()
    type: StreamEventType = StreamEventType.DONE
