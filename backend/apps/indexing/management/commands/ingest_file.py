"""
Django management command to ingest documents from disk.

Usage:
    python manage.py ingest_file docs/handbook.pdf notes.txt
"""
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from apps.indexing.extractor import ExtractionError, extract_text
from apps.indexing.pipeline import IngestionError, IngestionPipeline


class Command(BaseCommand):
    help = 'Ingest .txt or .pdf files into the chunk store'

    def add_arguments(self, parser):
        parser.add_argument('paths', nargs='+', help='Files to ingest')

    def handle(self, *args, **options):
        pipeline = IngestionPipeline()
        failed = 0

        for raw_path in options['paths']:
            path = Path(raw_path)
            if not path.is_file():
                self.stderr.write(f'Not a file: {path}')
                failed += 1
                continue

            try:
                text = extract_text(path.name, path.read_bytes())
                result = pipeline.ingest(path.name, text)
            except (ExtractionError, IngestionError) as e:
                self.stderr.write(self.style.ERROR(f'{path.name}: {e}'))
                failed += 1
                continue

            self.stdout.write(self.style.SUCCESS(
                f'{path.name}: {result.chunks_written} chunks written'
            ))

        if failed:
            raise CommandError(f'{failed} file(s) failed')
