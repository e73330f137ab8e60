"""
Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and provides common fixtures
and fakes shared by the test modules.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from lingua_scripter.core.batch.models import (
    BatchRequest, ChapterInput, CharacterEntry, GenerationSettings, GlossaryEntry
)


class FakeProvider:
    """
    In-memory streaming provider.

    Yields the scripted deltas, then raises ``error`` if one is set. When
    ``block_after`` is set, the stream hangs after that many deltas until it
    is cancelled.
    """

    provider_name = "fake"

    def __init__(self, deltas: List[str], error: Optional[Exception] = None,
                 block_after: Optional[int] = None):
        self.deltas = list(deltas)
        self.error = error
        self.block_after = block_after
        self.calls = []
        self.closed = False
        self.stream_closed = False

    async def stream(self, system_prompt, user_prompt, temperature=None, json_mode=False):
        self.calls.append({
            'system_prompt': system_prompt,
            'user_prompt': user_prompt,
            'temperature': temperature,
            'json_mode': json_mode
        })
        try:
            for position, delta in enumerate(self.deltas):
                if self.block_after is not None and position == self.block_after:
                    await asyncio.Event().wait()
                yield delta
            if self.block_after is not None and self.block_after >= len(self.deltas):
                await asyncio.Event().wait()
            if self.error is not None:
                raise self.error
        finally:
            self.stream_closed = True

    async def complete(self, system_prompt, user_prompt, temperature=None, json_mode=False):
        parts = []
        async for delta in self.stream(system_prompt, user_prompt, temperature, json_mode):
            parts.append(delta)
        return ''.join(parts)

    async def close(self):
        self.closed = True


async def async_iter(items):
    for item in items:
        yield item


async def collect(async_iterable):
    return [item async for item in async_iterable]


@pytest.fixture
def chapters():
    """Three short chapters."""
    return [
        ChapterInput(chapter_id="c1", source_text="Lin Feng opened the door.", title="One"),
        ChapterInput(chapter_id="c2", source_text="The Azure Sword shone.", title="Two"),
        ChapterInput(chapter_id="c3", source_text="Night fell.", title="Three"),
    ]


@pytest.fixture
def settings():
    """Generation settings that never touch the environment."""
    return GenerationSettings(
        provider="deepseek",
        model="deepseek-chat",
        api_key="sk-test",
        target_language="French",
        source_language="English",
        auto_detect_characters=False
    )


@pytest.fixture
def batch_request(chapters, settings):
    """Batch over the three chapters with a glossary and a character."""
    return BatchRequest(
        chapters=chapters,
        glossary=[GlossaryEntry("Azure Sword", "Épée d'Azur")],
        characters=[CharacterEntry("Lin Feng", "Lin Feng", "Male", "he/him")],
        settings=settings
    )


@pytest.fixture
def marked_output():
    """Model output for the three chapters, markers intact."""
    return (
        "[CHAPTER_1_START]\nLin Feng ouvrit la porte.\n[CHAPTER_1_END]\n\n"
        "[CHAPTER_2_START]\nL'Épée d'Azur brillait.\n[CHAPTER_2_END]\n\n"
        "[CHAPTER_3_START]\nLa nuit tomba.\n[CHAPTER_3_END]"
    )


def split_every(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]
