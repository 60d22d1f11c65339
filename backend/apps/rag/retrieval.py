"""
Chunk store and retrieval for RAG queries.

The chunk store is one global index over every ingested document. It
has no per-session or per-user partition, so all conversations search
the same corpus.

Implementations:
- PgVectorChunkStore: memory_chunks table, cosine distance via pgvector
- InMemoryChunkStore: process-local list, for local runs and tests
"""
import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from django.conf import settings
from django.db import DatabaseError, connection

from apps.indexing.models import MemoryChunk

logger = logging.getLogger(__name__)

# Substituted for the context when the corpus is empty
NO_CONTEXT_MARKER = "No context found."


class ChunkStoreError(Exception):
    """Raised when the chunk store cannot be written or queried."""
    pass


@dataclass(frozen=True)
class Chunk:
    """A stored slice of a document and its embedding."""
    source_file: str
    text: str
    vector: Sequence[float]


@dataclass
class ScoredChunk:
    """A chunk returned by a nearest-neighbour query."""
    id: int
    source_file: str
    text: str
    distance: float  # Cosine distance, lower = more similar


class ChunkStore(ABC):
    """Abstract base class for the vector index."""

    @abstractmethod
    def insert(self, chunk: Chunk) -> int:
        """Store a chunk and return its id."""
        pass

    @abstractmethod
    def nearest(self, vector: Sequence[float], k: int) -> List[ScoredChunk]:
        """Return up to k chunks ordered by ascending distance to vector."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored chunks."""
        pass


def _vector_literal(vector: Sequence[float]) -> str:
    """Convert an embedding to a PostgreSQL vector literal."""
    return '[' + ','.join(str(float(x)) for x in vector) + ']'


class PgVectorChunkStore(ChunkStore):
    """Chunk store backed by the memory_chunks table."""

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension or getattr(settings, 'EMBEDDING_DIMENSION', 768)

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise ChunkStoreError(
                f"Embedding dimension mismatch: store expects {self.dimension}, "
                f"got {len(vector)}. Check OLLAMA_EMBED_MODEL and EMBEDDING_DIMENSION."
            )

    def insert(self, chunk: Chunk) -> int:
        self._check_dimension(chunk.vector)
        try:
            row = MemoryChunk.objects.create(
                source_file=chunk.source_file,
                chunk_text=chunk.text,
                embedding=list(chunk.vector),
            )
        except DatabaseError as e:
            logger.error(f"Failed to store chunk from {chunk.source_file}: {e}")
            raise ChunkStoreError("Could not store chunk") from e
        return row.pk

    def nearest(self, vector: Sequence[float], k: int) -> List[ScoredChunk]:
        """
        Find the k nearest chunks using pgvector's cosine distance operator (<=>).

        Ties are broken by id so an unchanged corpus always returns the
        same order for the same vector.
        """
        self._check_dimension(vector)
        embedding_str = _vector_literal(vector)

        sql = """
            SELECT
                id,
                source_file,
                chunk_text,
                embedding <=> %s::vector AS distance
            FROM memory_chunks
            ORDER BY embedding <=> %s::vector, id
            LIMIT %s
        """

        try:
            with connection.cursor() as cursor:
                cursor.execute(sql, [embedding_str, embedding_str, k])
                rows = cursor.fetchall()
        except DatabaseError as e:
            logger.error(f"Vector search failed: {e}")
            raise ChunkStoreError("Could not query chunks") from e

        return [
            ScoredChunk(
                id=chunk_id,
                source_file=source_file,
                text=text,
                distance=float(distance),
            )
            for chunk_id, source_file, text, distance in rows
        ]

    def count(self) -> int:
        try:
            return MemoryChunk.objects.count()
        except DatabaseError as e:
            raise ChunkStoreError("Could not count chunks") from e


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine distance (1 - cosine similarity), same metric as pgvector's <=>."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


class InMemoryChunkStore(ChunkStore):
    """
    Process-local chunk store with brute-force cosine search.

    The dimension is fixed by the first inserted chunk unless given.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._lock = threading.Lock()
        self._rows: List[tuple] = []

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if self.dimension is not None and len(vector) != self.dimension:
            raise ChunkStoreError(
                f"Embedding dimension mismatch: store expects {self.dimension}, "
                f"got {len(vector)}"
            )

    def insert(self, chunk: Chunk) -> int:
        with self._lock:
            if self.dimension is None:
                self.dimension = len(chunk.vector)
            self._check_dimension(chunk.vector)
            chunk_id = len(self._rows) + 1
            self._rows.append((chunk_id, chunk.source_file, chunk.text, tuple(chunk.vector)))
        return chunk_id

    def nearest(self, vector: Sequence[float], k: int) -> List[ScoredChunk]:
        with self._lock:
            self._check_dimension(vector)
            rows = list(self._rows)

        scored = [
            ScoredChunk(
                id=chunk_id,
                source_file=source_file,
                text=text,
                distance=cosine_distance(vector, stored),
            )
            for chunk_id, source_file, text, stored in rows
        ]
        scored.sort(key=lambda c: (c.distance, c.id))
        return scored[:k]

    def count(self) -> int:
        with self._lock:
            return len(self._rows)


def build_context(chunks: List[ScoredChunk]) -> str:
    """
    Turn retrieved chunks into the prompt's context text.

    An empty result yields a marker string so generation still runs.
    """
    if not chunks:
        return NO_CONTEXT_MARKER
    return "\n\n".join(chunk.text for chunk in chunks)


# =============================================================================
# Store Factory
# =============================================================================

_store_instance: Optional[ChunkStore] = None


def get_chunk_store() -> ChunkStore:
    """
    Get the configured chunk store.

    Uses CHUNK_STORE_BACKEND to pick the implementation:
    - "pgvector" (default): PostgreSQL with the vector extension
    - "memory": process-local store
    """
    global _store_instance

    if _store_instance is not None:
        return _store_instance

    backend = getattr(settings, 'CHUNK_STORE_BACKEND', 'pgvector').lower()

    if backend == 'memory':
        logger.info("Using in-memory chunk store")
        _store_instance = InMemoryChunkStore()
    elif backend == 'pgvector':
        _store_instance = PgVectorChunkStore()
    else:
        raise ValueError(
            f"Invalid CHUNK_STORE_BACKEND: {backend}. "
            f"Must be 'pgvector' or 'memory'."
        )

    return _store_instance


def reset_chunk_store():
    """Reset the cached store instance. Useful for testing."""
    global _store_instance
    _store_instance = None
