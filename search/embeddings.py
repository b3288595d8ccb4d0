"""
Local Embeddings for Semantic Note Search

Uses sentence-transformers for local embedding generation.
No API calls, no cost.

Features:
- Lazily loaded, process-wide model shared by every engine
- Graceful absence: embed() returns None when no model is available
- Flat little-endian float64 vector codec for SQLite BLOB storage
- Cosine similarity

Usage:
    from search.embeddings import get_embedding_engine, serialize_vector

    engine = get_embedding_engine()
    vec = engine.embed("grocery list")
    if vec is not None:
        blob = serialize_vector(vec)
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

import numpy as np

from core.errors import EmbeddingUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'all-MiniLM-L6-v2'

# Stored vectors: IEEE-754 float64, little-endian, no header.
VECTOR_DTYPE = np.dtype('<f8')

VectorLike = Union[np.ndarray, Sequence[float]]

# Lazy import for sentence-transformers
_model = None
_model_name = None
_model_lock = threading.RLock()


def get_model(model_name: str = DEFAULT_MODEL):
    """
    Get or create the sentence-transformers model.

    The model is loaded once per process and reused. Loading a different
    model name replaces the cached one.

    Raises:
        EmbeddingUnavailableError: library missing or model failed to load
    """
    global _model, _model_name

    with _model_lock:
        if _model is not None and _model_name == model_name:
            return _model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise EmbeddingUnavailableError(
                "sentence-transformers not installed. "
                "Install with: pip install sentence-transformers"
            ) from e

        logger.info(f"Loading embedding model: {model_name}")
        try:
            _model = SentenceTransformer(model_name)
        except Exception as e:
            raise EmbeddingUnavailableError(
                f"Could not load embedding model {model_name}: {e}",
                model=model_name
            ) from e

        _model_name = model_name
        return _model


def reset_model():
    """Drop the cached model (used by tests)."""
    global _model, _model_name
    with _model_lock:
        _model = None
        _model_name = None


# =============================================================================
# Embedders
# =============================================================================

class Embedder(ABC):
    """Turns text into a fixed-length vector, or None when it cannot."""

    @abstractmethod
    def embed(self, text: str) -> Optional[np.ndarray]:
        """Embed a single text."""


class EmbeddingEngine(Embedder):
    """
    Generate embeddings using a local sentence-transformers model.

    Calls into the model are serialized; the underlying model makes no
    promise about concurrent use.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, enabled: bool = True):
        """
        Args:
            model_name: Name of the sentence-transformers model to use.
                        Default is 'all-MiniLM-L6-v2' (fast, good quality).
            enabled: When False the engine never loads a model and always
                     returns None (lexical-only operation).
        """
        self.model_name = model_name
        self.enabled = enabled
        self._unavailable = False

    @property
    def available(self) -> bool:
        """True until a model load has failed or the engine is disabled."""
        return self.enabled and not self._unavailable

    def _load(self):
        if not self.available:
            return None
        try:
            return get_model(self.model_name)
        except EmbeddingUnavailableError as e:
            # Only report once; later calls go straight to None.
            logger.warning(f"Semantic search disabled: {e.message}")
            self._unavailable = True
            return None

    def embed(self, text: str) -> Optional[np.ndarray]:
        """
        Generate embedding for a single text.

        Returns:
            float64 array of shape (dimension,), or None if the model is
            unavailable or the text produces no usable vector
        """
        if not text or not text.strip():
            return None

        with _model_lock:
            model = self._load()
            if model is None:
                return None
            vector = model.encode(text, convert_to_numpy=True)

        vector = np.asarray(vector, dtype=np.float64).reshape(-1)
        if vector.size == 0 or not np.all(np.isfinite(vector)):
            return None
        return vector


_engine: Optional[EmbeddingEngine] = None


def get_embedding_engine(model_name: str = DEFAULT_MODEL, enabled: bool = True) -> EmbeddingEngine:
    """Get the process-wide embedding engine, creating it on first use."""
    global _engine
    with _model_lock:
        if _engine is None or _engine.model_name != model_name or _engine.enabled != enabled:
            _engine = EmbeddingEngine(model_name, enabled=enabled)
        return _engine


# =============================================================================
# Vector Codec and Similarity
# =============================================================================

def serialize_vector(vector: VectorLike) -> bytes:
    """Encode a vector as flat little-endian float64 bytes."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).reshape(-1).tobytes()


def deserialize_vector(data: bytes) -> np.ndarray:
    """
    Decode bytes produced by serialize_vector.

    Raises:
        ValueError: if the buffer length is not a multiple of the element size
    """
    if len(data) % VECTOR_DTYPE.itemsize:
        raise ValueError(
            f"Vector buffer of {len(data)} bytes is not a multiple of {VECTOR_DTYPE.itemsize}"
        )
    return np.frombuffer(data, dtype=VECTOR_DTYPE).astype(np.float64)


def cosine_similarity(vec1: VectorLike, vec2: VectorLike) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns:
        Score in [-1, 1]; 0.0 when either vector is empty or has zero norm,
        or when the lengths differ
    """
    a = np.asarray(vec1, dtype=np.float64).reshape(-1)
    b = np.asarray(vec2, dtype=np.float64).reshape(-1)

    if a.size == 0 or a.shape != b.shape:
        return 0.0

    norm1 = np.linalg.norm(a)
    norm2 = np.linalg.norm(b)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(a, b) / (norm1 * norm2))
