"""
Search System for Braindump

Provides:
- Local embeddings for semantic search
- Hybrid search combining BM25 and semantic similarity (RRF)

Usage:
    from search import get_embedding_engine, HybridSearcher

    searcher = HybridSearcher(repo, get_embedding_engine())
    results = searcher.search("meeting notes", limit=10)
"""

from .embeddings import (
    Embedder,
    EmbeddingEngine,
    get_embedding_engine,
    serialize_vector,
    deserialize_vector,
    cosine_similarity,
)
from .hybrid_search import HybridSearcher, SearchResult, rrf_fuse

__all__ = [
    'Embedder',
    'EmbeddingEngine',
    'get_embedding_engine',
    'serialize_vector',
    'deserialize_vector',
    'cosine_similarity',
    'HybridSearcher',
    'SearchResult',
    'rrf_fuse',
]
