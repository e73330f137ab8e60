"""
Prompt construction for batch translation.

The system message carries the translator instruction retargeted to the
requested language, followed by the marker-preservation rules. The user
message carries the glossary, the character sheet and the marked text.
"""

from typing import Sequence, Tuple

from lingua_scripter.config import DEFAULT_TARGET_LANGUAGE
from .markers import encode_chapters
from .models import BatchRequest, CharacterEntry, GlossaryEntry

TARGET_LANGUAGE_PLACEHOLDER = "{{targetLanguage}}"
LEGACY_TARGET_PHRASE = "into fluent, natural English"


def resolve_system_instruction(system_instruction: str, target_language: str) -> str:
    """
    Substitute the target language into a translator instruction.

    Templates written before the placeholder existed hard-code English; their
    "into fluent, natural English" phrase is retargeted instead.
    """
    target_language = target_language or DEFAULT_TARGET_LANGUAGE
    if TARGET_LANGUAGE_PLACEHOLDER in system_instruction:
        return system_instruction.replace(TARGET_LANGUAGE_PLACEHOLDER, target_language)
    return system_instruction.replace(LEGACY_TARGET_PHRASE, f"into fluent, natural {target_language}")


def build_stream_system_instruction(system_instruction: str, target_language: str,
                                    chapter_count: int) -> str:
    base = resolve_system_instruction(system_instruction, target_language)
    return (
        f"{base}\n\n"
        f"IMPORTANT: The text contains {chapter_count} chapters marked with [CHAPTER_N_START] "
        f"and [CHAPTER_N_END] tags. \n"
        f"You MUST preserve these exact markers in your translated output. Translate the "
        f"content between each pair of markers.\n"
        f"Do NOT output any JSON. Just output the translated text with the chapter markers preserved."
    )


def build_glossary_block(glossary: Sequence[GlossaryEntry]) -> str:
    if not glossary:
        return "Glossary: None provided."
    lines = [f'- "{entry.original}": "{entry.translation}"' for entry in glossary]
    return "Glossary (Strictly follow these):\n" + "\n".join(lines)


def build_character_block(characters: Sequence[CharacterEntry]) -> str:
    if not characters:
        return ""
    lines = [
        f'- "{character.name}" (Translated Name: "{character.translated_name}"): '
        f'Gender is {character.gender or "not specified"}, '
        f'Pronouns are {character.pronouns or "not specified"}.'
        for character in characters
    ]
    return "\n\nCharacter Information (For context and consistency):\n" + "\n".join(lines)


def build_user_prompt(text: str, glossary: Sequence[GlossaryEntry],
                      characters: Sequence[CharacterEntry]) -> str:
    return (
        f"{build_glossary_block(glossary)}{build_character_block(characters)}"
        f"\n\n---\n\nText to translate:\n{text}"
    )


def build_batch_prompts(request: BatchRequest) -> Tuple[str, str]:
    """
    Build the (system, user) prompt pair for a streaming batch.

    Args:
        request: The batch; its chapters are framed with markers in order

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    settings = request.settings
    combined_text = encode_chapters(chapter.source_text for chapter in request.chapters)
    system_prompt = build_stream_system_instruction(
        settings.system_instruction, settings.target_language, len(request.chapters)
    )
    user_prompt = build_user_prompt(combined_text, request.glossary, request.characters)
    return system_prompt, user_prompt


def build_character_analysis_prompts(text: str, target_language: str) -> Tuple[str, str]:
    """Build the (system, user) pair asking for a JSON character sheet"""
    target_language = target_language or DEFAULT_TARGET_LANGUAGE
    system_prompt = (
        "Analyze the provided text to identify all characters. For each character, provide "
        f"their original name, their name translated into {target_language}, their gender "
        '(e.g., "Male", "Female", "Non-binary", or "Unknown"), and common pronouns '
        '(e.g., "he/him", "she/her", "they/them"). Respond ONLY with a valid JSON object. '
        'The object must have a single key "characters" which is an array of objects. Each '
        'object in the array should have "name", "translatedName", "gender", and "pronouns" '
        "keys. The 'name' field must be the original, raw name from the source text. If no "
        "characters are found, return an empty array. Do not include any explanatory text, "
        "markdown formatting, or anything besides the JSON object."
    )
    user_prompt = f"Text to analyze:\n---\n{text}\n---\n"
    return system_prompt, user_prompt
