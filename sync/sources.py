"""
Note Sources for Braindump

A note source is the system of record the sync pipeline reads from (Apple
Notes, an export file, ...). The sync engine only needs one capability from
it: list every note modified after a given time.

Sources:
- JsonlNoteSource: reads a JSONL export, one note per line
- StaticNoteSource: wraps an in-memory list (embedding / tests)

JSONL format (one object per line):
    {"id": "...", "title": "...", "folder": "Notes",
     "body": "<div>...</div>", "modified_at": "2025-10-15T14:30:00Z"}

Usage:
    from sync.sources import JsonlNoteSource

    source = JsonlNoteSource("exports/notes.jsonl")
    changed = source.fetch_changed(since=last_sync)
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from core.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

# Cursor value meaning "never synced".
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class SourceNote:
    """A note as reported by its source."""
    id: str
    title: str
    folder: str
    body: Optional[str] = None
    modified_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceNote':
        """
        Build a SourceNote from an exported dict.

        Raises:
            TypeError: if data is not a mapping
            KeyError: if 'id' is missing
            ValueError: if 'modified_at' is not an ISO-8601 string or 'body'
                is not a string
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")

        body = data.get('body')
        if body is not None and not isinstance(body, str):
            raise ValueError(f"body must be a string, got {type(body).__name__}")

        modified = data.get('modified_at') or data.get('modificationDate')
        return cls(
            id=str(data['id']),
            title=data.get('title') or '',
            folder=data.get('folder') or 'Notes',
            body=body,
            modified_at=parse_timestamp(modified) if modified else None,
        )


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif not isinstance(value, str):
        raise ValueError(f"expected an ISO-8601 string, got {type(value).__name__}")
    else:
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def changed_since(notes: Iterable[SourceNote], since: datetime) -> List[SourceNote]:
    """
    Notes modified strictly after `since`.

    Notes without a modification time are only reported by a first sync
    (since == EPOCH); afterwards they count as unchanged.
    """
    since = parse_timestamp(since)
    changed = []
    for note in notes:
        if note.modified_at is None:
            if since == EPOCH:
                changed.append(note)
        elif parse_timestamp(note.modified_at) > since:
            changed.append(note)
    return changed


class NoteSource(ABC):
    """Interface the sync engine consumes."""

    @abstractmethod
    def fetch_changed(self, since: datetime) -> List[SourceNote]:
        """
        List notes modified after `since`.

        Raises:
            SourceUnavailableError: the source cannot be read
        """

    def list_ids(self) -> List[str]:
        """
        Ids of every note currently in the source.

        Optional; sources that cannot enumerate raise NotImplementedError.
        """
        raise NotImplementedError(f"{type(self).__name__} cannot list note ids")


class StaticNoteSource(NoteSource):
    """A source backed by an in-memory list of notes."""

    def __init__(self, notes: Optional[Iterable[SourceNote]] = None):
        self.notes: List[SourceNote] = list(notes or [])

    def add(self, note: SourceNote):
        """Add or replace a note by id."""
        self.notes = [n for n in self.notes if n.id != note.id]
        self.notes.append(note)

    def remove(self, note_id: str):
        self.notes = [n for n in self.notes if n.id != note_id]

    def fetch_changed(self, since: datetime) -> List[SourceNote]:
        return changed_since(self.notes, since)

    def list_ids(self) -> List[str]:
        return [note.id for note in self.notes]


class JsonlNoteSource(NoteSource):
    """
    A source backed by a JSONL export file.

    The file is re-read on every call, so an exporter can rewrite it
    between syncs.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load(self) -> List[SourceNote]:
        if not self.path.exists():
            raise SourceUnavailableError(f"Note export not found: {self.path}", path=str(self.path))

        notes = []
        try:
            with open(self.path, encoding='utf-8') as f:
                for line_no, line in enumerate(f, 1):
                    if not line.strip():
                        continue
                    try:
                        notes.append(SourceNote.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                        logger.warning(f"{self.path}:{line_no}: skipping malformed note ({e})")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnavailableError(f"Cannot read {self.path}: {e}", path=str(self.path)) from e

        return notes

    def fetch_changed(self, since: datetime) -> List[SourceNote]:
        return changed_since(self._load(), since)

    def list_ids(self) -> List[str]:
        return [note.id for note in self._load()]
