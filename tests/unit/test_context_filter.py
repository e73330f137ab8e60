"""Unit tests for active glossary and character resolution."""

from lingua_scripter.core.batch.models import ChapterInput, CharacterEntry, GlossaryEntry
from lingua_scripter.core.context_filter import (
    chapter_match_stats, mentions, resolve_active_glossary_and_characters,
    resolve_for_chapters, uses_word_boundaries
)


GLOSSARY = [GlossaryEntry("Sect", "Secte"), GlossaryEntry("Azure Sword", "Épée d'Azur"), GlossaryEntry("Qi", "Qi")]
CHARACTERS = [CharacterEntry("Lin Feng"), CharacterEntry("Mei"), CharacterEntry("Zhao")]


class TestWordBoundaries:
    """Test language dependent matching."""

    def test_boundary_languages(self):
        assert uses_word_boundaries("English")
        assert not uses_word_boundaries("Japanese")
        assert not uses_word_boundaries("Chinese (Simplified)")
        assert not uses_word_boundaries("Auto-detect")
        assert not uses_word_boundaries(None)

    def test_whole_words_only_with_boundaries(self):
        assert mentions("The sect gathered.", "Sect", "English")
        assert not mentions("They dissected it.", "Sect", "English")

    def test_substrings_without_boundaries(self):
        assert mentions("They dissected it.", "Sect", "Auto-detect")
        assert mentions("林风走进了青云宗。", "青云宗", "Chinese (Simplified)")

    def test_special_characters_are_literal(self):
        assert mentions("Use C++ here", "C++", "Auto-detect")
        assert not mentions("Use C here", "C++", "Auto-detect")

    def test_empty_term(self):
        assert not mentions("anything", "", "English")


class TestResolution:
    """Test filtering for a batch."""

    def test_keeps_mentioned_entries_in_order(self):
        text = "Lin Feng drew the azure sword. Zhao watched."
        glossary, characters = resolve_active_glossary_and_characters(text, GLOSSARY, CHARACTERS, "English")

        assert [e.original for e in glossary] == ["Azure Sword"]
        assert [c.name for c in characters] == ["Lin Feng", "Zhao"]

    def test_resolve_for_chapters_spans_all_chapters(self):
        chapters = [ChapterInput("1", "Mei trained her Qi."), ChapterInput("2", "The Sect elders met.")]
        glossary, characters = resolve_for_chapters(chapters, GLOSSARY, CHARACTERS, "English")

        assert [e.original for e in glossary] == ["Sect", "Qi"]
        assert [c.name for c in characters] == ["Mei"]

    def test_chapter_match_stats(self):
        chapters = [ChapterInput("1", "Mei trained her Qi."), ChapterInput("2", "Nothing here.")]
        stats = chapter_match_stats(chapters, GLOSSARY, CHARACTERS, "English")

        assert stats["1"].to_dict() == {"glossaryCount": 1, "characterCount": 1}
        assert stats["2"].to_dict() == {"glossaryCount": 0, "characterCount": 0}
