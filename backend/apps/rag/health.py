"""
Liveness and readiness endpoints.

/healthz answers as long as the process is up. /readyz also requires
the database; Ollama and the chunk corpus are reported but never block
readiness, since sessions and history are still served while the model
host is down or nothing has been uploaded yet.
"""
import logging
from datetime import datetime, timezone
from typing import Tuple

import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET

from apps.rag.ollama_admin import get_ollama_url, is_embedding_model
from apps.rag.retrieval import ChunkStoreError, get_chunk_store

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_database() -> Tuple[str, bool]:
    """Run a trivial query. Returns (status, ok)."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
    except DatabaseError as e:
        logger.error(f"Readiness: database unavailable: {e}")
        return f'error: {str(e)[:50]}', False
    return 'ok', True


def check_ollama() -> Tuple[str, bool]:
    """
    Check that Ollama answers and has the embedding model installed.

    Returns (status, ok); ok is False when Ollama is unreachable or the
    embedding model is missing, which makes uploads and chat fail.
    """
    timeout = getattr(settings, 'OLLAMA_ADMIN_TIMEOUT', 10)
    try:
        with httpx.Client(timeout=float(timeout)) as client:
            response = client.get(f'{get_ollama_url()}/api/tags')
            response.raise_for_status()
            models = response.json().get('models') or []
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning(f"Readiness: Ollama unavailable: {e}")
        return f'degraded: {str(e)[:30]}', False

    names = [m.get('name') for m in models if isinstance(m, dict)]
    if not any(isinstance(n, str) and is_embedding_model(n) for n in names):
        embed_model = getattr(settings, 'OLLAMA_EMBED_MODEL', 'nomic-embed-text')
        return f'degraded: {embed_model} not pulled', False
    return 'ok', True


def check_corpus() -> Tuple[str, bool]:
    """Count stored chunks. An empty corpus is reported, not treated as a failure."""
    try:
        total = get_chunk_store().count()
    except ChunkStoreError as e:
        logger.warning(f"Readiness: chunk store unavailable: {e}")
        return f'degraded: {str(e)[:30]}', False
    return f'{total} chunks', True


@csrf_exempt
@require_GET
def healthz(request):
    return JsonResponse({'status': 'healthy', 'timestamp': _now()})


@csrf_exempt
@require_GET
def readyz(request):
    """Ready when the database answers; the other checks only downgrade the report."""
    database_status, database_ok = check_database()
    ollama_status, ollama_ok = check_ollama()
    corpus_status, corpus_ok = check_corpus()

    if not database_ok:
        status, code = 'not_ready', 503
    elif not (ollama_ok and corpus_ok):
        status, code = 'degraded', 200
    else:
        status, code = 'ready', 200

    return JsonResponse({
        'status': status,
        'timestamp': _now(),
        'checks': {
            'database': database_status,
            'ollama': ollama_status,
            'corpus': corpus_status,
        },
    }, status=code)
