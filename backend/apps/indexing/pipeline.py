"""
Ingestion pipeline: document text -> chunks -> embeddings -> chunk store.

Ingestion is not atomic across chunks. If chunk k fails, chunks
0..k-1 stay stored and the whole document is reported as failed.
Nothing is deduplicated, so ingesting a document twice stores its
chunks twice.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from django.conf import settings

from apps.indexing.chunker import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    chunk_text,
)
from apps.indexing.retry import (
    RetryExhausted,
    RetryPolicy,
    get_embedding_retry_policy,
    retry_with_backoff,
)
from apps.rag.embeddings import EmbeddingError, OllamaEmbedder, get_embedder
from apps.rag.retrieval import Chunk, ChunkStore, ChunkStoreError, get_chunk_store

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    """Raised when a document could not be fully ingested."""
    pass


@dataclass
class IngestionResult:
    """Outcome of a successful ingestion."""
    source_file: str
    chunks_written: int

    def to_dict(self) -> dict:
        return {
            "sourceFile": self.source_file,
            "chunksWritten": self.chunks_written,
        }


class IngestionPipeline:
    """Splits documents, embeds each chunk and writes it to the chunk store."""

    def __init__(
        self,
        embedder: Optional[OllamaEmbedder] = None,
        chunk_store: Optional[ChunkStore] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.embedder = embedder or get_embedder()
        self.chunk_store = chunk_store or get_chunk_store()
        self.chunk_size = chunk_size or getattr(settings, 'CHUNK_SIZE', DEFAULT_CHUNK_SIZE)
        if chunk_overlap is None:
            chunk_overlap = getattr(settings, 'CHUNK_OVERLAP', DEFAULT_CHUNK_OVERLAP)
        self.chunk_overlap = chunk_overlap
        self.retry_policy = retry_policy or get_embedding_retry_policy()
        self.sleep = sleep or time.sleep

    def _embed(self, text: str, position: str):
        return retry_with_backoff(
            func=lambda: self.embedder.embed(text),
            policy=self.retry_policy,
            exceptions=(EmbeddingError,),
            on_retry=lambda attempt, err, backoff: logger.warning(
                f"Embedding retry {attempt + 1} for chunk {position}: {err}"
            ),
            sleep=self.sleep,
        )

    def ingest(self, name: str, raw_text: str) -> IngestionResult:
        """
        Ingest one document.

        Args:
            name: Source name stored with every chunk (the filename)
            raw_text: Full document text

        Returns:
            IngestionResult with the number of chunks written

        Raises:
            IngestionError: If any chunk fails
        """
        if not raw_text or not raw_text.strip():
            logger.warning(f"No text to ingest in {name}")
            return IngestionResult(source_file=name, chunks_written=0)

        chunks = chunk_text(
            raw_text,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )
        total = len(chunks)
        written = 0

        logger.info(f"Ingesting {name}: {total} chunks")

        for chunk in chunks:
            position = f"{chunk.index + 1}/{total} of {name}"

            if not chunk.text.strip():
                logger.debug(f"Skipping whitespace-only chunk {position}")
                continue

            try:
                vector = self._embed(chunk.text, position)
                self.chunk_store.insert(Chunk(
                    source_file=name,
                    text=chunk.text,
                    vector=vector,
                ))
            except RetryExhausted as e:
                logger.error(f"Embedding failed for chunk {position} after {e.attempts} attempts")
                raise IngestionError(f"Ingestion of {name} failed at chunk {chunk.index}") from e
            except (EmbeddingError, ChunkStoreError) as e:
                logger.error(f"Failed to ingest chunk {position}: {e}")
                raise IngestionError(f"Ingestion of {name} failed at chunk {chunk.index}") from e

            written += 1

        logger.info(f"Ingested {name}: {written} chunks written")
        return IngestionResult(source_file=name, chunks_written=written)


def ingest_document(name: str, raw_text: str) -> IngestionResult:
    """Ingest a document with the configured embedder and chunk store."""
    return IngestionPipeline().ingest(name, raw_text)
