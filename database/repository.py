"""
SQLite Note Repository for Braindump

Provides indexed storage with:
- One row per note, keyed by the source note id
- Full-text search via an FTS5 mirror of (title, normalized_content)
- Serialized embedding vectors for semantic search
- The sync cursor (timestamp of the last completed sync pass)

The FTS5 table uses external content and is maintained by the repository
itself inside the same transaction as the primary row, not by triggers.
Every mutation runs under a single writer lock in a BEGIN IMMEDIATE
transaction, so a reader never sees a note without its index entry or the
reverse.

Usage:
    from database.repository import NoteRepository, NoteRecord

    repo = NoteRepository("~/.braindump/braindump.sqlite")
    repo.upsert(NoteRecord(id="n1", title="Groceries", folder="Notes",
                           normalized_content="Milk", raw_content="<p>Milk</p>"))
    results = repo.lexical_search("milk")
"""

import re
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential
)

from core.config import DEFAULT_DB_PATH
from core.errors import DatabaseError, StoreNotInitializedError
from search.embeddings import deserialize_vector

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = 'last_sync'

# Busy timeouts in seconds. Reads never block on WAL writers, so theirs only
# covers checkpoints; locked writes are retried by tenacity instead.
READ_BUSY_TIMEOUT = 5.0
WRITE_BUSY_TIMEOUT = 1.0
WRITE_ATTEMPTS = 5


# =============================================================================
# Schema
# =============================================================================

SCHEMA = '''
-- One row per source note. pk aliases the rowid, so VACUUM keeps it stable
-- and the FTS mirror below stays aligned.
CREATE TABLE IF NOT EXISTS notes (
    pk INTEGER PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    folder TEXT NOT NULL,
    normalized_content TEXT NOT NULL,
    raw_content TEXT NOT NULL,
    modified_at TEXT,
    embedding BLOB
);

-- Full-text index over notes, kept in step by NoteRepository
CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
    title,
    normalized_content,
    content=notes,
    content_rowid=pk,
    tokenize='porter unicode61'
);

-- Key/value sync state (cursor)
CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notes_folder ON notes(folder);
'''


# =============================================================================
# Records
# =============================================================================

@dataclass
class NoteRecord:
    """A stored note: normalized text, original markup and optional vector."""
    id: str
    title: str
    folder: str
    normalized_content: str
    raw_content: str
    modified_at: Optional[datetime] = None
    embedding: Optional[bytes] = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    @property
    def vector(self) -> Optional[np.ndarray]:
        """The decoded embedding, or None."""
        if self.embedding is None:
            return None
        return deserialize_vector(self.embedding)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'folder': self.folder,
            'normalized_content': self.normalized_content,
            'raw_content': self.raw_content,
            'modified_at': self.modified_at.isoformat() if self.modified_at else None,
            'has_embedding': self.has_embedding,
        }


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return _to_utc(datetime.fromisoformat(value))


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _to_utc(value).isoformat()


def build_fts_query(query: str) -> Optional[str]:
    """
    Build an FTS5 MATCH expression from free text.

    Every word token is quoted, so FTS5 operators and punctuation in the
    user's query are treated as plain text. All tokens must match.

    Returns:
        MATCH expression, or None when the query has no searchable tokens
    """
    terms = re.findall(r'\w+', query or '')
    if not terms:
        return None
    return ' '.join(f'"{term}"' for term in terms)


def _is_locked(error: BaseException) -> bool:
    return isinstance(error, sqlite3.OperationalError) and 'locked' in str(error).lower()


class NoteRepository:
    """
    Repository for note storage and retrieval.

    Uses SQLite with FTS5 for full-text search and BLOB columns for vectors.
    """

    def __init__(
        self,
        db_path: Union[str, Path, None] = None,
        initialize: bool = True,
        write_timeout: float = WRITE_BUSY_TIMEOUT
    ):
        """
        Initialize the repository.

        Writers wait for another process's lock in two layers: SQLite's busy
        handler waits up to `write_timeout` seconds per attempt, and tenacity
        retries a locked write up to WRITE_ATTEMPTS times with a short
        exponential backoff. A write therefore gives up after roughly
        WRITE_ATTEMPTS * write_timeout + 1 seconds and raises DatabaseError.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.braindump/braindump.sqlite
            initialize: Create the schema now. When False, initialize() must be
                        called before any other operation.
            write_timeout: SQLite busy timeout for each write attempt, in seconds
        """
        if db_path is None:
            db_path = DEFAULT_DB_PATH

        self.db_path = Path(db_path).expanduser()
        self.write_timeout = write_timeout
        self._write_lock = threading.RLock()
        self._initialized = False

        if initialize:
            self.initialize()

    def initialize(self):
        """Create tables and the FTS index if missing. Safe to call repeatedly."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._write_lock:
            try:
                with self._connection() as conn:
                    conn.execute('PRAGMA journal_mode=WAL')
                    conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise DatabaseError(f"Could not initialize note store: {e}", path=str(self.db_path)) from e

        self._initialized = True
        logger.debug(f"Note store ready at {self.db_path}")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @contextmanager
    def _connection(self, timeout: float = READ_BUSY_TIMEOUT) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path), timeout=timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _check_initialized(self):
        if not self._initialized:
            raise StoreNotInitializedError(path=str(self.db_path))

    @retry(
        retry=retry_if_exception(_is_locked),
        stop=stop_after_attempt(WRITE_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=0.5),
        reraise=True
    )
    def _run_write(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        with self._write_lock:
            with self._connection(timeout=self.write_timeout) as conn:
                conn.execute('BEGIN IMMEDIATE')
                return operation(conn)

    def _write(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        """Run operation in one exclusive write transaction."""
        self._check_initialized()
        try:
            return self._run_write(operation)
        except sqlite3.Error as e:
            raise DatabaseError(f"Write failed: {e}") from e

    def _read(self, operation: Callable[[sqlite3.Connection], Any]) -> Any:
        self._check_initialized()
        try:
            with self._connection() as conn:
                return operation(conn)
        except sqlite3.Error as e:
            raise DatabaseError(f"Read failed: {e}") from e

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def upsert(self, record: NoteRecord) -> NoteRecord:
        """
        Insert or replace a note by id, updating its FTS entry atomically.

        Args:
            record: The note to store

        Returns:
            The stored record
        """
        values = (
            record.title,
            record.folder,
            record.normalized_content,
            record.raw_content,
            _format_timestamp(record.modified_at),
            record.embedding,
        )

        def operation(conn: sqlite3.Connection):
            existing = conn.execute(
                'SELECT pk AS row_id, title, normalized_content FROM notes WHERE id = ?',
                (record.id,)
            ).fetchone()

            if existing is None:
                cursor = conn.execute('''
                    INSERT INTO notes
                    (title, folder, normalized_content, raw_content, modified_at, embedding, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', values + (record.id,))
                row_id = cursor.lastrowid
            else:
                row_id = existing['row_id']
                conn.execute(
                    "INSERT INTO notes_fts(notes_fts, rowid, title, normalized_content) "
                    "VALUES ('delete', ?, ?, ?)",
                    (row_id, existing['title'], existing['normalized_content'])
                )
                conn.execute('''
                    UPDATE notes
                    SET title = ?, folder = ?, normalized_content = ?, raw_content = ?,
                        modified_at = ?, embedding = ?
                    WHERE id = ?
                ''', values + (record.id,))

            conn.execute(
                'INSERT INTO notes_fts(rowid, title, normalized_content) VALUES (?, ?, ?)',
                (row_id, record.title, record.normalized_content)
            )

        self._write(operation)
        return record

    def get(self, note_id: str) -> Optional[NoteRecord]:
        """
        Get a note by id.

        Returns:
            NoteRecord or None
        """
        row = self._read(lambda conn: conn.execute(
            'SELECT * FROM notes WHERE id = ?', (note_id,)
        ).fetchone())

        if row is None:
            return None
        return self._row_to_record(row)

    def delete(self, note_id: str) -> bool:
        """
        Delete a note and its FTS entry.

        Returns:
            True if a note was deleted
        """
        def operation(conn: sqlite3.Connection) -> bool:
            existing = conn.execute(
                'SELECT pk AS row_id, title, normalized_content FROM notes WHERE id = ?',
                (note_id,)
            ).fetchone()
            if existing is None:
                return False

            conn.execute(
                "INSERT INTO notes_fts(notes_fts, rowid, title, normalized_content) "
                "VALUES ('delete', ?, ?, ?)",
                (existing['row_id'], existing['title'], existing['normalized_content'])
            )
            conn.execute('DELETE FROM notes WHERE id = ?', (note_id,))
            return True

        return self._write(operation)

    def count(self) -> int:
        """Get total note count."""
        return self._read(lambda conn: conn.execute('SELECT COUNT(*) FROM notes').fetchone()[0])

    def list_ids(self) -> List[str]:
        """All stored note ids, sorted."""
        rows = self._read(lambda conn: conn.execute('SELECT id FROM notes ORDER BY id').fetchall())
        return [row['id'] for row in rows]

    def all_records(self) -> List[NoteRecord]:
        """Every stored note, ordered by id."""
        rows = self._read(lambda conn: conn.execute('SELECT * FROM notes ORDER BY id').fetchall())
        return [self._row_to_record(row) for row in rows]

    # =========================================================================
    # Search
    # =========================================================================

    def lexical_search(self, query: str, limit: Optional[int] = None) -> List[NoteRecord]:
        """
        Full-text search over title and normalized content.

        Results are ranked by FTS5 bm25 (best first); equal scores are
        ordered by note id.

        Args:
            query: Free text; every word must match
            limit: Maximum results (None for all matches)

        Returns:
            List of matching notes
        """
        fts_query = build_fts_query(query)
        if fts_query is None:
            return []

        sql = '''
            SELECT n.*, bm25(notes_fts) AS score
            FROM notes_fts
            JOIN notes n ON n.pk = notes_fts.rowid
            WHERE notes_fts MATCH ?
            ORDER BY score, n.id
        '''
        params: List[Any] = [fts_query]

        if limit is not None:
            sql += ' LIMIT ?'
            params.append(max(limit, 0))

        rows = self._read(lambda conn: conn.execute(sql, params).fetchall())
        return [self._row_to_record(row) for row in rows]

    def all_vectors(self) -> List[Tuple[str, np.ndarray]]:
        """
        Every stored embedding, ordered by note id.

        Returns:
            List of (note_id, vector) tuples
        """
        rows = self._read(lambda conn: conn.execute(
            'SELECT id, embedding FROM notes WHERE embedding IS NOT NULL ORDER BY id'
        ).fetchall())

        vectors = []
        for row in rows:
            try:
                vectors.append((row['id'], deserialize_vector(row['embedding'])))
            except ValueError as e:
                logger.warning(f"Skipping corrupt embedding for {row['id']}: {e}")
        return vectors

    def rebuild_index(self):
        """
        Re-derive the whole FTS index from the notes table.

        Index entries are keyed by notes.pk, which VACUUM preserves, so this
        is only needed to repair an index that has drifted from its rows.
        """
        self._write(lambda conn: conn.execute("INSERT INTO notes_fts(notes_fts) VALUES ('rebuild')"))
        logger.info("Rebuilt full-text index")

    # =========================================================================
    # Sync Cursor
    # =========================================================================

    def get_cursor(self) -> Optional[datetime]:
        """Timestamp of the last completed sync, or None if never synced."""
        row = self._read(lambda conn: conn.execute(
            'SELECT value FROM sync_state WHERE key = ?', (LAST_SYNC_KEY,)
        ).fetchone())

        if row is None:
            return None
        try:
            return _parse_timestamp(row['value'])
        except ValueError:
            logger.warning(f"Ignoring unreadable sync cursor: {row['value']!r}")
            return None

    def set_cursor(self, timestamp: datetime):
        """Record the timestamp of a completed sync."""
        value = _format_timestamp(timestamp)
        self._write(lambda conn: conn.execute(
            'INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)',
            (LAST_SYNC_KEY, value)
        ))

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get repository statistics."""
        def operation(conn: sqlite3.Connection) -> Dict[str, Any]:
            stats: Dict[str, Any] = {}

            stats['total'] = conn.execute('SELECT COUNT(*) FROM notes').fetchone()[0]
            stats['embedded'] = conn.execute(
                'SELECT COUNT(*) FROM notes WHERE embedding IS NOT NULL'
            ).fetchone()[0]

            rows = conn.execute('''
                SELECT folder, COUNT(*) as count
                FROM notes
                GROUP BY folder
                ORDER BY count DESC, folder
            ''').fetchall()
            stats['by_folder'] = {row['folder']: row['count'] for row in rows}

            return stats

        stats = self._read(operation)
        cursor = self.get_cursor()
        stats['last_sync'] = cursor.isoformat() if cursor else None
        return stats

    # =========================================================================
    # Helpers
    # =========================================================================

    def _row_to_record(self, row: sqlite3.Row) -> NoteRecord:
        return NoteRecord(
            id=row['id'],
            title=row['title'],
            folder=row['folder'],
            normalized_content=row['normalized_content'],
            raw_content=row['raw_content'],
            modified_at=_parse_timestamp(row['modified_at']),
            embedding=row['embedding'],
        )
