"""
Data structures for batch translation.

A batch is an ordered, immutable list of chapters translated with a single
upstream call. Marker numbering is the chapter's 1-based position in that
list and never changes once the request is built.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from lingua_scripter.config import (
    LLM_PROVIDER, DEFAULT_MODEL, DEFAULT_TARGET_LANGUAGE, DEFAULT_SOURCE_LANGUAGE,
    DEFAULT_SYSTEM_INSTRUCTION, AUTO_CHARACTER_DETECTION
)


class ChapterStatus(str, Enum):
    """Per-chapter status inside a batch"""
    PENDING = "pending"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    ERROR = "error"


class BatchState(str, Enum):
    """Lifecycle of a batch orchestrator"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class ChapterInput:
    """A chapter to translate"""
    chapter_id: str
    source_text: str
    title: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterInput":
        return cls(
            chapter_id=str(data.get('id', data.get('chapterId', ''))),
            source_text=data.get('originalText', data.get('source_text', '')) or '',
            title=data.get('title', '') or ''
        )


@dataclass(frozen=True)
class GlossaryEntry:
    """A term pair the model must follow strictly"""
    original: str
    translation: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlossaryEntry":
        return cls(original=data.get('original', '') or '',
                   translation=data.get('translation', '') or '')

    def to_dict(self) -> Dict[str, str]:
        return {'original': self.original, 'translation': self.translation}


@dataclass(frozen=True)
class CharacterEntry:
    """A character known to the project (name is the raw source-language name)"""
    name: str
    translated_name: str = ""
    gender: str = ""
    pronouns: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CharacterEntry":
        return cls(
            name=str(data.get('name', '') or ''),
            translated_name=str(data.get('translatedName', data.get('translated_name', '')) or ''),
            gender=str(data.get('gender', '') or ''),
            pronouns=str(data.get('pronouns', '') or '')
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            'name': self.name,
            'translatedName': self.translated_name,
            'gender': self.gender,
            'pronouns': self.pronouns
        }


@dataclass
class GenerationSettings:
    """Provider selection and generation parameters for one batch"""
    provider: str = LLM_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: Optional[float] = None
    target_language: str = DEFAULT_TARGET_LANGUAGE
    source_language: str = DEFAULT_SOURCE_LANGUAGE
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    route_providers: Optional[str] = None
    auto_detect_characters: bool = AUTO_CHARACTER_DETECTION


@dataclass(frozen=True)
class BatchRequest:
    """
    One batch translation request.

    Chapters keep the order they were given in; ``indexed_chapters`` pairs
    each with its marker number.
    """
    chapters: Tuple[ChapterInput, ...]
    glossary: Tuple[GlossaryEntry, ...] = ()
    characters: Tuple[CharacterEntry, ...] = ()
    settings: GenerationSettings = field(default_factory=GenerationSettings)

    def __post_init__(self):
        object.__setattr__(self, 'chapters', tuple(self.chapters))
        object.__setattr__(self, 'glossary', tuple(self.glossary))
        object.__setattr__(self, 'characters', tuple(self.characters))
        if not self.chapters:
            raise ValueError("A batch needs at least one chapter")

    def __len__(self) -> int:
        return len(self.chapters)

    def indexed_chapters(self) -> List[Tuple[int, ChapterInput]]:
        return [(index, chapter) for index, chapter in enumerate(self.chapters, start=1)]

    def chapter_at(self, index: int) -> ChapterInput:
        """Chapter for a 1-based marker index"""
        return self.chapters[index - 1]

    def combined_source_text(self) -> str:
        return '\n\n'.join(chapter.source_text for chapter in self.chapters)


@dataclass
class ProgressUpdate:
    """Per-chapter progress notification sent to subscribers"""
    chapter_id: str
    status: ChapterStatus
    streaming_text: Optional[str] = None
    completed_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressUpdate":
        return cls(
            chapter_id=data['chapterId'],
            status=ChapterStatus(data['status']),
            streaming_text=data.get('streamingText'),
            completed_count=data.get('completedCount')
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {'chapterId': self.chapter_id, 'status': self.status.value}
        if self.streaming_text is not None:
            data['streamingText'] = self.streaming_text
        if self.completed_count is not None:
            data['completedCount'] = self.completed_count
        return data


@dataclass
class BatchProgress:
    """Snapshot of a running or finished batch"""
    chapter_ids: List[str]
    statuses: Dict[str, ChapterStatus]
    completed_count: int = 0
    current_chapter_id: Optional[str] = None
    streaming_text: str = ""
    warnings: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    characters_found: int = 0

    @classmethod
    def for_request(cls, request: BatchRequest) -> "BatchProgress":
        chapter_ids = [chapter.chapter_id for chapter in request.chapters]
        return cls(
            chapter_ids=chapter_ids,
            statuses={chapter_id: ChapterStatus.PENDING for chapter_id in chapter_ids}
        )

    @property
    def total(self) -> int:
        return len(self.chapter_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'completedCount': self.completed_count,
            'chapters': [
                {'chapterId': chapter_id, 'status': self.statuses[chapter_id].value}
                for chapter_id in self.chapter_ids
            ],
            'currentChapterId': self.current_chapter_id,
            'streamingText': self.streaming_text,
            'warnings': dict(self.warnings),
            'error': self.error,
            'charactersFound': self.characters_found
        }
