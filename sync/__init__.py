"""
Note Sync for Braindump

Usage:
    from sync import NotesSyncService, JsonlNoteSource

    service = NotesSyncService(JsonlNoteSource("notes.jsonl"), repo)
    report = service.sync()
"""

from .sources import NoteSource, SourceNote, JsonlNoteSource, StaticNoteSource
from .notes_sync import NotesSyncService, SyncReport

__all__ = [
    'NoteSource',
    'SourceNote',
    'JsonlNoteSource',
    'StaticNoteSource',
    'NotesSyncService',
    'SyncReport',
]
