"""
Incremental Note Sync for Braindump

Pulls notes changed since the last sync from a note source and writes them
into the local note store:

    fetch changed -> normalize HTML -> embed title + text -> upsert

Notes are processed one at a time. A failure on one note is logged and
counted, and the pass moves on. When the pass ends the sync cursor is set to
the current time, including when some notes failed; those notes are picked up
again only once they change at the source.

Usage:
    from sync.notes_sync import NotesSyncService

    service = NotesSyncService(source, repo, embedder=get_embedding_engine())
    report = service.sync()
    print(report.to_dict())  # {'processed': 3, 'skipped': 0, 'errors': 0}
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from tqdm import tqdm

from core.errors import SourceUnavailableError
from core.logging_config import log_performance
from database.repository import NoteRecord, NoteRepository
from parsers.notes_html import HTMLNormalizer
from search.embeddings import Embedder, serialize_vector
from .sources import EPOCH, NoteSource, SourceNote

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncReport:
    """Counts from one sync or reindex pass."""
    processed: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class NotesSyncService:
    """
    Keeps the local note store in step with a note source.
    """

    def __init__(
        self,
        source: Optional[NoteSource],
        repository: NoteRepository,
        normalizer: Optional[Callable[[str], str]] = None,
        embedder: Optional[Embedder] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        """
        Args:
            source: Where notes come from. Required for sync() and prune().
            repository: Local note store
            normalizer: HTML -> text function (defaults to HTMLNormalizer)
            embedder: Vector generator; None stores notes without vectors
            clock: Returns the current time (UTC)
        """
        self.source = source
        self.repository = repository
        self.normalizer = normalizer or HTMLNormalizer()
        self.embedder = embedder
        self.clock = clock

    @log_performance('braindump.sync')
    def sync(self, show_progress: bool = False) -> SyncReport:
        """
        Sync every note changed since the last pass.

        Args:
            show_progress: Show a progress bar on stderr

        Returns:
            SyncReport with processed / skipped / error counts

        Raises:
            SourceUnavailableError: the source could not be listed; nothing
                was written and the cursor is unchanged
        """
        source = self._require_source()
        since = self.repository.get_cursor() or EPOCH

        logger.info(f"Syncing notes changed since {since.isoformat()}")
        try:
            changed = source.fetch_changed(since)
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(f"Could not list changed notes: {e}") from e

        logger.info(f"Found {len(changed)} changed notes to sync")

        report = SyncReport()
        for note in tqdm(changed, desc="Syncing", disable=not show_progress):
            if not note.body:
                report.skipped += 1
                continue

            try:
                self.repository.upsert(self._build_record(note))
            except Exception as e:
                report.errors += 1
                logger.warning(f"Failed to sync {note.title!r} ({note.id}): {e}")
                continue

            report.processed += 1
            logger.debug(f"Synced: {note.title}")

        self.repository.set_cursor(self.clock())

        logger.info(
            f"Sync complete: {report.processed} processed, "
            f"{report.skipped} skipped, {report.errors} errors"
        )
        return report

    def reindex(self, show_progress: bool = False) -> SyncReport:
        """
        Re-normalize and re-embed every stored note from its raw content.

        Used after normalization rules or the embedding model change. The
        source is not contacted and the cursor does not move.
        """
        report = SyncReport()

        for record in tqdm(self.repository.all_records(), desc="Reindexing", disable=not show_progress):
            if not record.raw_content:
                report.skipped += 1
                continue

            note = SourceNote(
                id=record.id,
                title=record.title,
                folder=record.folder,
                body=record.raw_content,
                modified_at=record.modified_at,
            )
            try:
                self.repository.upsert(self._build_record(note))
            except Exception as e:
                report.errors += 1
                logger.warning(f"Failed to reindex {record.title!r} ({record.id}): {e}")
                continue

            report.processed += 1

        logger.info(f"Reindex complete: {report.processed} processed, {report.errors} errors")
        return report

    def prune(self) -> int:
        """
        Delete stored notes that no longer exist at the source.

        Returns:
            Number of notes deleted

        Raises:
            SourceUnavailableError: the source cannot enumerate its notes
        """
        source = self._require_source()
        try:
            current = set(source.list_ids())
        except SourceUnavailableError:
            raise
        except NotImplementedError as e:
            raise SourceUnavailableError(str(e)) from e
        except Exception as e:
            raise SourceUnavailableError(f"Could not list note ids: {e}") from e

        deleted = 0
        for note_id in self.repository.list_ids():
            if note_id not in current and self.repository.delete(note_id):
                deleted += 1

        if deleted:
            logger.info(f"Pruned {deleted} notes deleted at the source")
        return deleted

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_source(self) -> NoteSource:
        if self.source is None:
            raise SourceUnavailableError("No note source configured")
        return self.source

    def _build_record(self, note: SourceNote) -> NoteRecord:
        """Normalize and embed one note."""
        text = self.normalizer(note.body)

        embedding = None
        if self.embedder is not None:
            vector = self.embedder.embed(f"{note.title}\n\n{text}")
            if vector is not None:
                embedding = serialize_vector(vector)

        return NoteRecord(
            id=note.id,
            title=note.title,
            folder=note.folder,
            normalized_content=text,
            raw_content=note.body,
            modified_at=note.modified_at,
            embedding=embedding,
        )
