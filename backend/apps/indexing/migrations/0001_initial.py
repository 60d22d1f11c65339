# Generated migration for MemoryChunk model

from django.db import migrations, models
import pgvector.django


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        pgvector.django.VectorExtension(),
        migrations.CreateModel(
            name='MemoryChunk',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_file', models.CharField(help_text='Original filename of the source document', max_length=255)),
                ('chunk_text', models.TextField(help_text='The text content of this chunk')),
                ('embedding', pgvector.django.VectorField(dimensions=768, help_text='Vector embedding from Ollama nomic-embed-text')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'memory_chunks',
                'ordering': ['id'],
            },
        ),
    ]
