"""
File-backed project store.

Keeps chapters, glossaries and characters as one JSON document per project:

    <data_dir>/chapters/<project_id>.json
    <data_dir>/glossaries/<project_id>.json
    <data_dir>/characters/<project_id>.json

Writes go to a temporary file that atomically replaces the document, so a
crash never leaves half-written JSON behind. Each document has its own lock
per event loop, making read-modify-write cycles safe within that loop.
"""

import asyncio
import json
import os
import uuid
import weakref
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiofiles

from lingua_scripter.core.batch.models import ChapterInput, CharacterEntry, GlossaryEntry
from lingua_scripter.utils.unified_logger import debug


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonProjectStore:
    """
    Minimal project store implementing the batch collaborator contracts.

    Example:
        >>> store = JsonProjectStore("data")
        >>> await store.add_chapters("novel", [{"title": "1", "originalText": "..."}])
        >>> orchestrator = BatchOrchestrator(persist_chapter=store.persist_chapter_translation)
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        # asyncio locks are bound to one loop; web jobs each run their own
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Path, asyncio.Lock]]" = \
            weakref.WeakKeyDictionary()

    def _path(self, kind: str, project_id: str) -> Path:
        return self.data_dir / kind / f"{project_id}.json"

    def _lock(self, path: Path) -> asyncio.Lock:
        locks = self._locks.setdefault(asyncio.get_running_loop(), {})
        if path not in locks:
            locks[path] = asyncio.Lock()
        return locks[path]

    async def _read(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            content = await f.read()
        return json.loads(content) if content.strip() else []

    async def _write(self, path: Path, data: List[Dict[str, Any]]):
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(f".{uuid.uuid4().hex}.tmp")
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data, ensure_ascii=False, indent=2))
        os.replace(tmp_path, path)

    # === Chapters ===

    async def add_chapters(self, project_id: str, chapters: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Append chapters to a project.

        Args:
            project_id: Project identifier
            chapters: Dicts with ``title`` and ``originalText`` (``id`` optional)

        Returns:
            The stored chapter records
        """
        path = self._path("chapters", project_id)
        async with self._lock(path):
            existing = await self._read(path)
            next_number = max((c.get('chapterNumber', 0) for c in existing), default=0) + 1
            added = []
            for offset, chapter in enumerate(chapters):
                timestamp = _now()
                record = {
                    'id': chapter.get('id') or str(uuid.uuid4()),
                    'projectId': project_id,
                    'chapterNumber': chapter.get('chapterNumber', next_number + offset),
                    'title': chapter.get('title', ''),
                    'originalText': chapter.get('originalText', ''),
                    'translatedText': chapter.get('translatedText'),
                    'createdAt': timestamp,
                    'updatedAt': timestamp
                }
                existing.append(record)
                added.append(record)
            await self._write(path, existing)
        return added

    async def get_chapters(self, project_id: str) -> List[Dict[str, Any]]:
        chapters = await self._read(self._path("chapters", project_id))
        return sorted(chapters, key=lambda c: c.get('chapterNumber', 0))

    async def get_chapter(self, chapter_id: str) -> Optional[Dict[str, Any]]:
        for path in self._chapter_files():
            for chapter in await self._read(path):
                if chapter.get('id') == chapter_id:
                    return chapter
        return None

    async def untranslated_chapters(self, project_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Chapters without a translation, in chapter order"""
        pending = [c for c in await self.get_chapters(project_id) if not c.get('translatedText')]
        return pending[:limit] if limit else pending

    def _chapter_files(self) -> List[Path]:
        directory = self.data_dir / "chapters"
        if not directory.exists():
            return []
        return sorted(directory.glob("*.json"))

    async def persist_chapter_translation(self, chapter_id: str, translated_text: str) -> bool:
        """
        Store a chapter's translation (idempotent upsert).

        Returns:
            False when no chapter has this id
        """
        for path in self._chapter_files():
            async with self._lock(path):
                chapters = await self._read(path)
                for chapter in chapters:
                    if chapter.get('id') == chapter_id:
                        chapter['translatedText'] = translated_text
                        chapter['updatedAt'] = _now()
                        await self._write(path, chapters)
                        debug(f"Saved translation for chapter {chapter_id}")
                        return True
        return False

    # === Glossary ===

    async def get_glossary(self, project_id: str) -> List[GlossaryEntry]:
        entries = await self._read(self._path("glossaries", project_id))
        return [GlossaryEntry.from_dict(entry) for entry in entries]

    async def set_glossary(self, project_id: str, entries: Iterable[GlossaryEntry]):
        path = self._path("glossaries", project_id)
        async with self._lock(path):
            await self._write(path, [entry.to_dict() for entry in entries])

    # === Characters ===

    async def get_characters(self, project_id: str) -> List[CharacterEntry]:
        records = await self._read(self._path("characters", project_id))
        return [CharacterEntry.from_dict(record) for record in records]

    async def add_characters(self, project_id: str, characters: Iterable[CharacterEntry]) -> int:
        """
        Merge characters into the project's database.

        Names already present (case-insensitive) are skipped; an empty
        translated name falls back to the original name.

        Returns:
            Number of characters added
        """
        path = self._path("characters", project_id)
        async with self._lock(path):
            records = await self._read(path)
            known = {record.get('name', '').lower() for record in records}
            added = 0
            for character in characters:
                name = character.name.strip()
                if not name or name.lower() in known:
                    continue
                records.append({
                    'id': str(uuid.uuid4()),
                    'name': name,
                    'translatedName': character.translated_name or name,
                    'gender': character.gender,
                    'pronouns': character.pronouns
                })
                known.add(name.lower())
                added += 1

            if added:
                records.sort(key=lambda record: record.get('name', ''))
                await self._write(path, records)
        return added


def chapter_inputs(records: Iterable[Dict[str, Any]]) -> List[ChapterInput]:
    """Convert stored chapter records into batch inputs"""
    return [ChapterInput.from_dict(record) for record in records]
