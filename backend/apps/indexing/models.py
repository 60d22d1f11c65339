"""
Memory chunk model for storing text chunks with embeddings.
"""
from django.db import models
from pgvector.django import VectorField


class MemoryChunk(models.Model):
    """
    A slice of an ingested document with its embedding vector.
    
    Chunks are written once by the ingestion pipeline and never updated.
    They are not tied to any chat session: every conversation searches
    the whole corpus.
    """
    # Name of the uploaded file the chunk came from
    source_file = models.CharField(
        max_length=255,
        help_text="Original filename of the source document"
    )
    
    # Chunk text content
    chunk_text = models.TextField(
        help_text="The text content of this chunk"
    )
    
    # Vector embedding (dimension depends on model, nomic-embed-text uses 768)
    embedding = VectorField(
        dimensions=768,
        help_text="Vector embedding from Ollama nomic-embed-text"
    )
    
    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'memory_chunks'
        ordering = ['id']

    def __str__(self):
        preview = self.chunk_text[:50] + '...' if len(self.chunk_text) > 50 else self.chunk_text
        return f"Chunk {self.pk} of {self.source_file}: {preview}"
