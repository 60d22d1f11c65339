"""
Migration to add HNSW index on memory_chunks.embedding for fast vector search.

HNSW (Hierarchical Navigable Small World) provides:
- Fast approximate nearest neighbor search
- No need to pre-train like IVFFlat
- Good balance of speed and recall

The index only exists on PostgreSQL; the sqlite fallback used for local
runs and tests has no vector index and skips this migration.
"""
from django.db import migrations


CREATE_INDEX_SQL = """
    CREATE INDEX IF NOT EXISTS memory_chunks_embedding_hnsw_idx
    ON memory_chunks
    USING hnsw (embedding vector_cosine_ops)
    WITH (m = 16, ef_construction = 64);
"""

DROP_INDEX_SQL = "DROP INDEX IF EXISTS memory_chunks_embedding_hnsw_idx;"


def create_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    # Cosine distance, matching the <=> operator used by retrieval
    schema_editor.execute(CREATE_INDEX_SQL)


def drop_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    schema_editor.execute(DROP_INDEX_SQL)


class Migration(migrations.Migration):

    dependencies = [
        ('indexing', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_hnsw_index, drop_hnsw_index),
    ]
