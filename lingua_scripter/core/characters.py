"""
Post-batch character extraction.

After a batch completes, the combined source text is sent to the model once
more with a JSON-only analysis prompt. New characters are merged into the
project's character database by the caller.
"""

import json
import re
from typing import Callable, List

from lingua_scripter.core.batch.exceptions import CharacterExtractionError
from lingua_scripter.core.batch.models import CharacterEntry, GenerationSettings
from lingua_scripter.core.batch.prompts import build_character_analysis_prompts
from lingua_scripter.core.llm.base import StreamingProvider
from lingua_scripter.core.llm.exceptions import ProviderError
from lingua_scripter.core.llm.factory import create_provider_from_settings
from lingua_scripter.utils.unified_logger import info

JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')

# Analysis is extraction, not creative writing
ANALYSIS_TEMPERATURE = 0.1


def parse_character_response(response: str) -> List[CharacterEntry]:
    """
    Parse the model's character analysis answer.

    The first ``{...}`` span is taken so that stray prose or code fences
    around the object are tolerated.

    Raises:
        CharacterExtractionError: No JSON object, invalid JSON or wrong shape
    """
    match = JSON_OBJECT_PATTERN.search(response or "")
    if not match:
        raise CharacterExtractionError("AI did not return a valid JSON object for character analysis.")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise CharacterExtractionError(f"Invalid JSON in character analysis: {e}") from e

    characters = data.get("characters") if isinstance(data, dict) else None
    if not isinstance(characters, list):
        raise CharacterExtractionError("Invalid response format for character analysis.")

    return [
        CharacterEntry.from_dict(item)
        for item in characters
        if isinstance(item, dict) and str(item.get("name", "") or "").strip()
    ]


class CharacterExtractor:
    """
    Extract characters from source text with an LLM.

    Callable as ``extractor(combined_source_text, target_language)`` so it can
    be handed to the orchestrator directly.
    """

    def __init__(self, provider_factory: Callable[[], StreamingProvider]):
        self.provider_factory = provider_factory

    @classmethod
    def from_settings(cls, settings: GenerationSettings) -> "CharacterExtractor":
        return cls(lambda: create_provider_from_settings(settings))

    async def extract(self, text: str, target_language: str) -> List[CharacterEntry]:
        if not text.strip():
            return []

        system_prompt, user_prompt = build_character_analysis_prompts(text, target_language)
        provider = self.provider_factory()
        try:
            response = await provider.complete(system_prompt, user_prompt,
                                               temperature=ANALYSIS_TEMPERATURE, json_mode=True)
        except ProviderError as e:
            raise CharacterExtractionError(f"Character analysis failed: {e}") from e
        finally:
            await provider.close()

        characters = parse_character_response(response)
        info(f"Character analysis found {len(characters)} character(s)")
        return characters

    async def __call__(self, text: str, target_language: str) -> List[CharacterEntry]:
        return await self.extract(text, target_language)
