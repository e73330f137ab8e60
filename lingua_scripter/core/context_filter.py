"""
Active glossary and character resolution.

Only glossary terms and characters that actually occur in a batch's source
text are sent to the model. Matching is case-insensitive on the literal term;
word boundaries are enforced unless the source language is auto-detected or
written without spaces between words.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from lingua_scripter.config import NO_BOUNDARY_LANGUAGES, AUTO_DETECT_LANGUAGE
from lingua_scripter.core.batch.models import ChapterInput, CharacterEntry, GlossaryEntry


@dataclass
class ChapterMatchStats:
    """How many glossary terms and characters a chapter mentions"""
    glossary_count: int = 0
    character_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {'glossaryCount': self.glossary_count, 'characterCount': self.character_count}


def uses_word_boundaries(source_language: Optional[str]) -> bool:
    if not source_language or source_language == AUTO_DETECT_LANGUAGE:
        return False
    return source_language not in NO_BOUNDARY_LANGUAGES


def compile_term_pattern(term: str, source_language: Optional[str]) -> "re.Pattern":
    boundary = r'\b' if uses_word_boundaries(source_language) else ''
    return re.compile(f"{boundary}{re.escape(term)}{boundary}", re.IGNORECASE)


def mentions(text: str, term: str, source_language: Optional[str]) -> bool:
    """True when ``term`` occurs in ``text`` under the language's matching rules"""
    if not term:
        return False
    return compile_term_pattern(term, source_language).search(text) is not None


def resolve_active_glossary_and_characters(
    combined_source_text: str,
    glossary: Sequence[GlossaryEntry],
    characters: Sequence[CharacterEntry],
    source_language: Optional[str]
) -> Tuple[List[GlossaryEntry], List[CharacterEntry]]:
    """
    Filter glossary entries and characters down to those mentioned in the text.

    Args:
        combined_source_text: Source text of every chapter in the batch
        glossary: Project glossary
        characters: Project character database
        source_language: Batch source language setting

    Returns:
        Tuple of (active_glossary, active_characters), in their original order
    """
    active_glossary = [
        entry for entry in glossary
        if mentions(combined_source_text, entry.original, source_language)
    ]
    active_characters = [
        character for character in characters
        if mentions(combined_source_text, character.name, source_language)
    ]
    return active_glossary, active_characters


def resolve_for_chapters(
    chapters: Sequence[ChapterInput],
    glossary: Sequence[GlossaryEntry],
    characters: Sequence[CharacterEntry],
    source_language: Optional[str]
) -> Tuple[List[GlossaryEntry], List[CharacterEntry]]:
    """Resolve the active context for a batch of chapters"""
    combined = '\n'.join(chapter.source_text for chapter in chapters)
    return resolve_active_glossary_and_characters(combined, glossary, characters, source_language)


def chapter_match_stats(
    chapters: Sequence[ChapterInput],
    glossary: Sequence[GlossaryEntry],
    characters: Sequence[CharacterEntry],
    source_language: Optional[str]
) -> Dict[str, ChapterMatchStats]:
    """
    Count glossary and character matches per chapter.

    Returns:
        Mapping of chapter id to its ChapterMatchStats
    """
    glossary_patterns = [
        compile_term_pattern(entry.original, source_language)
        for entry in glossary if entry.original
    ]
    character_patterns = [
        compile_term_pattern(character.name, source_language)
        for character in characters if character.name
    ]

    stats = {}
    for chapter in chapters:
        stats[chapter.chapter_id] = ChapterMatchStats(
            glossary_count=sum(1 for pattern in glossary_patterns if pattern.search(chapter.source_text)),
            character_count=sum(1 for pattern in character_patterns if pattern.search(chapter.source_text))
        )
    return stats
