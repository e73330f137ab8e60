"""
Persistence layer for projects, chapters, glossaries and characters.
"""

from .json_store import JsonProjectStore, chapter_inputs

__all__ = ['JsonProjectStore', 'chapter_inputs']
