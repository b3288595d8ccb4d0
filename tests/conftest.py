"""
Shared fixtures for Braindump tests.

No test loads a real sentence-transformers model; semantic behaviour is
exercised with the deterministic embedders defined here.
"""

import re
import sys
import zlib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from database.repository import NoteRecord, NoteRepository
from search.embeddings import Embedder, serialize_vector
from sync.sources import SourceNote, StaticNoteSource


class HashingEmbedder(Embedder):
    """Bag-of-words vector: each token increments a hashed dimension."""

    def __init__(self, dimension: int = 64):
        self.dimension = dimension
        self.calls: List[str] = []

    def embed(self, text: str) -> Optional[np.ndarray]:
        self.calls.append(text)
        tokens = re.findall(r'\w+', text.lower())
        if not tokens:
            return None

        vector = np.zeros(self.dimension)
        for token in tokens:
            vector[zlib.crc32(token.encode('utf-8')) % self.dimension] += 1.0
        return vector


class MappingEmbedder(Embedder):
    """Returns a fixed vector per exact text, None for anything else."""

    def __init__(self, vectors: Dict[str, Sequence[float]]):
        self.vectors = {text: np.asarray(v, dtype=np.float64) for text, v in vectors.items()}

    def embed(self, text: str) -> Optional[np.ndarray]:
        return self.vectors.get(text)


@pytest.fixture
def repo(tmp_path):
    """A fresh note store in a temporary directory."""
    return NoteRepository(tmp_path / "braindump.sqlite")


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def make_record():
    """Factory for NoteRecords with sensible defaults."""
    def _make(note_id, content='', title=None, folder='Notes', vector=None, modified_at=None):
        return NoteRecord(
            id=note_id,
            title=title if title is not None else f"Note {note_id}",
            folder=folder,
            normalized_content=content,
            raw_content=f"<div>{content}</div>",
            modified_at=modified_at,
            embedding=serialize_vector(vector) if vector is not None else None,
        )
    return _make


@pytest.fixture
def make_source_note(now):
    """Factory for SourceNotes modified shortly before `now`."""
    def _make(note_id, body, title=None, folder='Notes', age_seconds=60):
        return SourceNote(
            id=note_id,
            title=title if title is not None else f"Note {note_id}",
            folder=folder,
            body=body,
            modified_at=now - timedelta(seconds=age_seconds),
        )
    return _make


@pytest.fixture
def source():
    return StaticNoteSource()
