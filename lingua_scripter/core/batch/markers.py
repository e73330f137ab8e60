"""
Chapter marker protocol.

Chapters are framed with ``[CHAPTER_i_START]`` / ``[CHAPTER_i_END]`` sentinels
(i is 1-based) before being sent as one prompt. The model is asked to keep
the sentinels, and the scanner recovers chapter boundaries from the
accumulated output while it is still streaming.

Extraction rules:
    - For each chapter, the first start marker wins; the end marker is the
      first one that follows it.
    - A chapter is extracted at most once, so repeated scans of the same
      buffer never report it again.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

# Appended to a streamed batch response body when the provider fails
STREAM_ERROR_SENTINEL = "[ERROR]"

MARKER_PATTERN = re.compile(r'\[CHAPTER_\d+_(?:START|END)\]')

# Longest possible marker prefix still being streamed, e.g. "[CHAP" or "[CHAPTER_12_EN"
PARTIAL_MARKER_PATTERN = re.compile(r'\[(?:C(?:H(?:A(?:P(?:T(?:E(?:R(?:_(?:\d+(?:_(?:[A-Z]*)?)?)?)?)?)?)?)?)?)?)?\Z')


def start_marker(index: int) -> str:
    return f"[CHAPTER_{index}_START]"


def end_marker(index: int) -> str:
    return f"[CHAPTER_{index}_END]"


def encode_chapters(texts: Iterable[str]) -> str:
    """
    Frame chapter texts with markers, in order.

    Example:
        >>> encode_chapters(["Hello", "World"])
        '[CHAPTER_1_START]\\nHello\\n[CHAPTER_1_END]\\n\\n[CHAPTER_2_START]\\nWorld\\n[CHAPTER_2_END]'
    """
    return '\n\n'.join(
        f"{start_marker(index)}\n{text}\n{end_marker(index)}"
        for index, text in enumerate(texts, start=1)
    )


def strip_markers(text: str) -> str:
    """Remove every complete chapter marker from text"""
    return MARKER_PATTERN.sub('', text)


def strip_partial_marker(text: str) -> str:
    """Drop a trailing fragment that could still grow into a marker"""
    match = PARTIAL_MARKER_PATTERN.search(text)
    if match:
        return text[:match.start()]
    return text


class MarkerScanner:
    """
    Incremental scanner over the accumulated model output.

    The scanner owns the buffer: append every delta, then call ``scan`` to
    collect chapters whose end marker has arrived.

    Example:
        >>> scanner = MarkerScanner(2)
        >>> scanner.append("[CHAPTER_1_START]\\nBonjour\\n[CHAPTER_1_")
        >>> scanner.scan()
        []
        >>> scanner.append("END]")
        >>> scanner.scan()
        [(1, 'Bonjour')]
    """

    def __init__(self, chapter_count: int):
        if chapter_count < 1:
            raise ValueError("chapter_count must be at least 1")
        self.chapter_count = chapter_count
        self.buffer = ""
        self.extracted: Dict[int, str] = {}
        # The buffer only grows, so a first occurrence never moves once found
        self._starts: Dict[int, int] = {}

    def append(self, delta: str):
        self.buffer += delta

    def _start_position(self, index: int) -> int:
        if index in self._starts:
            return self._starts[index]
        position = self.buffer.find(start_marker(index))
        if position != -1:
            self._starts[index] = position
        return position

    def started(self, index: int) -> bool:
        return self._start_position(index) != -1

    def scan(self) -> List[Tuple[int, str]]:
        """
        Re-scan the buffer and return newly completed chapters.

        Returns:
            ``(index, clean_text)`` pairs in index order, each index reported
            at most once over the scanner's lifetime
        """
        newly_extracted = []
        for index in range(1, self.chapter_count + 1):
            if index in self.extracted:
                continue

            start = self._start_position(index)
            if start == -1:
                continue

            content_start = start + len(start_marker(index))
            end = self.buffer.find(end_marker(index), content_start)
            if end == -1:
                continue

            text = self.buffer[content_start:end].strip()
            self.extracted[index] = text
            newly_extracted.append((index, text))

        return newly_extracted

    def current_chapter(self) -> Optional[int]:
        """Highest chapter whose start marker arrived and which is not extracted yet"""
        for index in range(self.chapter_count, 0, -1):
            if index not in self.extracted and self.started(index):
                return index
        return None

    def streaming_text(self, index: int) -> str:
        """
        Clean text streamed so far for a chapter.

        Everything after the chapter's start marker, with complete markers
        removed and a trailing partial marker held back.
        """
        if index in self.extracted:
            return self.extracted[index]

        start = self._start_position(index)
        if start == -1:
            return ""

        tail = self.buffer[start + len(start_marker(index)):]
        end = tail.find(end_marker(index))
        if end != -1:
            tail = tail[:end]
        return strip_partial_marker(strip_markers(tail)).lstrip()

    def clean_output(self) -> str:
        """
        Whole buffer with complete markers removed and a trailing partial marker
        held back.

        Every prefix of a marker is held back while it sits at the end of the
        buffer, so this only ever grows as deltas are appended.
        """
        return strip_partial_marker(strip_markers(self.buffer))

    def fallback_text(self) -> str:
        """Whole output without markers, for unmarked single-chapter replies"""
        return strip_markers(self.buffer).strip()

    def any_marker_matched(self) -> bool:
        return bool(self.extracted)

    def missing(self) -> List[int]:
        return [index for index in range(1, self.chapter_count + 1) if index not in self.extracted]
