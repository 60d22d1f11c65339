"""
Embedding service shared by ingestion and chat.

Uses Ollama to turn text into vectors. Document chunks and user
questions must go through the same model so their distances compare.
"""
import logging
from typing import List, Optional

import httpx
from django.conf import settings

from apps.rag.ollama import OllamaRequestError, post_json

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """
    Raised when embedding generation fails.

    `retriable` tells ingestion whether another attempt could help.
    """

    def __init__(self, message: str, retriable: bool = True):
        super().__init__(message)
        self.retriable = retriable


class QueryValidationError(Exception):
    """Raised when query validation fails."""
    pass


def validate_query(query) -> str:
    """
    Check that a user question can be processed.

    The question is returned unchanged: it is stored verbatim in the
    session history and later compared against it.

    Raises:
        QueryValidationError: If the question is missing or blank
    """
    if not isinstance(query, str) or not query.strip():
        raise QueryValidationError("Question cannot be empty")

    return query


class OllamaEmbedder:
    """Embedding client for Ollama's /api/embeddings endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or getattr(settings, 'OLLAMA_BASE_URL', 'http://localhost:11434')
        self.model = model or getattr(settings, 'OLLAMA_EMBED_MODEL', 'nomic-embed-text')
        self.timeout = timeout or getattr(settings, 'OLLAMA_EMBED_TIMEOUT', 120)
        self.dimension = getattr(settings, 'EMBEDDING_DIMENSION', 768)
        self._transport = transport

    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for a text.

        Args:
            text: Chunk text or user question

        Returns:
            Embedding vector as list of floats

        Raises:
            EmbeddingError: If the Ollama call fails or returns no vector
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot generate embedding for empty text", retriable=False)

        try:
            data = post_json(
                self.base_url,
                "/api/embeddings",
                {"model": self.model, "prompt": text},
                timeout=self.timeout,
                transport=self._transport,
            )
        except OllamaRequestError as e:
            raise EmbeddingError(f"Embedding failed: {e}", retriable=e.transient) from e

        # Ollama /api/embeddings returns {"embedding": [...]}
        embedding = data.get("embedding")
        if not embedding or not isinstance(embedding, list):
            raise EmbeddingError("No embedding in response")

        if len(embedding) != self.dimension:
            logger.warning(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {len(embedding)}"
            )

        logger.debug(f"Generated embedding with {len(embedding)} dimensions")
        return embedding


_embedder_instance: Optional[OllamaEmbedder] = None


def get_embedder() -> OllamaEmbedder:
    """Get the shared embedding client (lazy initialization)."""
    global _embedder_instance
    if _embedder_instance is None:
        _embedder_instance = OllamaEmbedder()
    return _embedder_instance


def reset_embedder():
    """Reset the cached client instance. Useful for testing."""
    global _embedder_instance
    _embedder_instance = None
