"""
Database Layer for Braindump

SQLite-based note storage with FTS5 full-text search.

Usage:
    from database import NoteRepository, NoteRecord

    repo = NoteRepository()
    repo.upsert(record)
    results = repo.lexical_search("groceries")
"""

from .repository import NoteRepository, NoteRecord

__all__ = [
    'NoteRepository',
    'NoteRecord',
]
