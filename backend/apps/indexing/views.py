"""
Document upload view.

POST /api/upload - extract text from a .txt or .pdf upload and ingest it
"""
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.indexing.extractor import ExtractionError, extract_text, get_extension
from apps.indexing.pipeline import IngestionError, ingest_document
from apps.rag.audit import audit_document_ingest_failed, audit_document_ingested

logger = logging.getLogger(__name__)

# Multipart field name used by the UI
UPLOAD_FIELD = 'document'


def validate_extension(filename: str) -> bool:
    """Check if file extension is allowed."""
    return get_extension(filename) in getattr(settings, 'ALLOWED_EXTENSIONS', ['.txt', '.pdf'])


@csrf_exempt
@require_http_methods(["POST"])
def upload_document(request):
    """
    Upload and ingest a document.

    Accepts multipart/form-data with a 'document' field.
    The document is not kept: only its chunks and vectors are stored.

    Returns:
        {"message": "File vectorized!"}
    """
    uploaded_file = request.FILES.get(UPLOAD_FIELD)
    if uploaded_file is None:
        return JsonResponse({"error": "No file uploaded."}, status=400)

    filename = uploaded_file.name
    size_bytes = uploaded_file.size

    logger.info(f"Upload request: {filename}, {size_bytes} bytes")

    max_size = getattr(settings, 'MAX_UPLOAD_SIZE', 50 * 1024 * 1024)
    if size_bytes > max_size:
        max_mb = max_size // (1024 * 1024)
        return JsonResponse(
            {"error": f"File too large. Maximum size is {max_mb}MB"},
            status=400
        )

    if not validate_extension(filename):
        return JsonResponse(
            {"error": "Invalid file type. Allowed: TXT, PDF"},
            status=400
        )

    try:
        raw_text = extract_text(filename, uploaded_file.read())
        result = ingest_document(filename, raw_text)
    except (ExtractionError, IngestionError) as e:
        logger.error(f"Ingestion failed for {filename}: {e}")
        audit_document_ingest_failed(request, filename, str(e))
        return JsonResponse({"error": "Ingestion failed."}, status=500)
    except Exception as e:
        logger.exception(f"Unexpected error during ingestion of {filename}: {e}")
        audit_document_ingest_failed(request, filename, type(e).__name__)
        return JsonResponse({"error": "Ingestion failed."}, status=500)

    audit_document_ingested(
        request,
        filename=filename,
        size_bytes=size_bytes,
        chunks_written=result.chunks_written,
    )
    return JsonResponse({"message": "File vectorized!"})
