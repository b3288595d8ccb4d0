"""
Hybrid Search for Braindump

Combines BM25 (SQLite FTS5) and semantic search (embeddings) over the local
note store. Uses Reciprocal Rank Fusion (RRF) to merge the two rankings.

RRF formula: score(id) = sum(1 / (k + rank)) over every ranked list that
contains id, with 1-based ranks and k = 60. Only ranks matter, so the BM25
and cosine scales never have to be reconciled.

Usage:
    from search.hybrid_search import HybridSearcher

    searcher = HybridSearcher(repo, get_embedding_engine())
    results = searcher.search("grocery list", limit=10)

    for result in results:
        print(f"{result.score:.4f} - {result.title}")
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from core.logging_config import log_performance
from .embeddings import Embedder, cosine_similarity

if TYPE_CHECKING:
    from database.repository import NoteRepository

logger = logging.getLogger(__name__)

RRF_K = 60
SNIPPET_LENGTH = 200


@dataclass
class SearchResult:
    """A search result with fused score."""
    note_id: str
    title: str
    folder: str
    snippet: str
    score: float

    def to_dict(self) -> dict:
        return {
            'noteId': self.note_id,
            'title': self.title,
            'folder': self.folder,
            'snippet': self.snippet,
            'score': self.score,
        }


def rrf_fuse(rankings: Sequence[Sequence[str]], k: int = RRF_K) -> List[Tuple[str, float]]:
    """
    Merge ranked id lists using Reciprocal Rank Fusion.

    Args:
        rankings: Id lists, each ordered best first
        k: RRF constant (higher = flatter contribution across ranks)

    Returns:
        (id, fused_score) pairs, highest score first; equal scores are
        ordered by id
    """
    scores: Dict[str, float] = {}

    for ranking in rankings:
        for rank, item_id in enumerate(ranking, 1):
            scores[item_id] = scores.get(item_id, 0.0) + 1.0 / (k + rank)

    return sorted(scores.items(), key=lambda item: (-item[1], item[0]))


class HybridSearcher:
    """
    Hybrid search combining BM25 and semantic search.

    The semantic pass scores the query against every stored vector (O(N));
    there is no approximate index.
    """

    def __init__(
        self,
        repository: 'NoteRepository',
        embedder: Optional[Embedder] = None,
        rrf_k: int = RRF_K,
        snippet_length: int = SNIPPET_LENGTH
    ):
        """
        Initialize hybrid searcher.

        Args:
            repository: Note store to query
            embedder: Embeds the query; None means lexical-only search
            rrf_k: RRF constant
            snippet_length: Characters of normalized content per snippet
        """
        self.repository = repository
        self.embedder = embedder
        self.rrf_k = rrf_k
        self.snippet_length = snippet_length

    @log_performance('braindump.search')
    def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """
        Search notes using hybrid BM25 + semantic ranking.

        Args:
            query: Search query
            limit: Maximum results to return

        Returns:
            List of SearchResult objects sorted by fused score
        """
        if limit <= 0:
            return []

        lexical_ids = self._lexical_ranking(query)
        semantic_ids = self._semantic_ranking(query)

        fused = rrf_fuse([lexical_ids, semantic_ids], k=self.rrf_k)[:limit]

        results = []
        for note_id, score in fused:
            note = self.repository.get(note_id)
            if note is None:
                # Deleted between ranking and fetch
                continue
            results.append(SearchResult(
                note_id=note.id,
                title=note.title,
                folder=note.folder,
                snippet=note.normalized_content[:self.snippet_length],
                score=score,
            ))

        logger.debug(
            f"Search {query!r}: {len(lexical_ids)} lexical, "
            f"{len(semantic_ids)} semantic, {len(results)} returned"
        )
        return results

    def _lexical_ranking(self, query: str) -> List[str]:
        """Note ids from FTS5, best first."""
        return [note.id for note in self.repository.lexical_search(query)]

    def _semantic_ranking(self, query: str) -> List[str]:
        """Note ids by cosine similarity to the query, best first."""
        if self.embedder is None:
            return []

        query_vec = self.embedder.embed(query)
        if query_vec is None:
            return []

        scored = [
            (note_id, cosine_similarity(query_vec, vector))
            for note_id, vector in self.repository.all_vectors()
        ]
        scored.sort(key=lambda item: (-item[1], item[0]))

        return [note_id for note_id, _ in scored]
