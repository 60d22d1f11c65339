"""
Structured audit trail for chat turns, sessions, uploads and model pulls.

Each event is one JSON line on the 'audit' logger. Questions, answers
and document text are never logged, only ids, sizes and outcomes.
"""
import json
import logging
import uuid
from datetime import datetime, timezone

audit_logger = logging.getLogger('audit')


class AuditEvent:
    """Audit event types."""
    CHAT_TURN = 'chat.turn'
    CHAT_FAILED = 'chat.failed'
    SESSION_CREATED = 'session.created'
    SESSION_DELETED = 'session.deleted'
    DOCUMENT_INGESTED = 'document.ingested'
    DOCUMENT_INGEST_FAILED = 'document.ingest_failed'
    MODEL_PULLED = 'model.pulled'


def get_client_ip(request) -> str:
    """First address of X-Forwarded-For when behind a proxy, else REMOTE_ADDR."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_request_id(request) -> str:
    """
    Correlation id for every event logged while handling one request.

    Taken from X-Request-ID when the proxy sets one, otherwise generated
    and cached on the request.
    """
    request_id = getattr(request, 'request_id', None) or request.META.get('HTTP_X_REQUEST_ID')
    if not request_id:
        request_id = uuid.uuid4().hex[:8]
    request.request_id = request_id
    return request_id


def audit(request, event_type: str, outcome: str = 'success', **metadata):
    """Write one audit event for a request."""
    audit_logger.info(json.dumps({
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'request_id': get_request_id(request),
        'client_ip': get_client_ip(request),
        'outcome': outcome,
        'metadata': metadata,
    }, default=str))


def audit_chat_turn(request, session_id, question_length: int, new_session: bool):
    """Log an answered turn, preceded by session.created for a new conversation."""
    if new_session:
        audit(request, AuditEvent.SESSION_CREATED, session_id=session_id)
    audit(request, AuditEvent.CHAT_TURN, session_id=session_id, question_length=question_length)


def audit_chat_failed(request, session_id, step: str):
    audit(request, AuditEvent.CHAT_FAILED, outcome='failure', session_id=session_id, step=step)


def audit_session_deleted(request, session_id):
    audit(request, AuditEvent.SESSION_DELETED, session_id=session_id)


def audit_document_ingested(request, filename: str, size_bytes: int, chunks_written: int):
    audit(
        request,
        AuditEvent.DOCUMENT_INGESTED,
        filename=filename,
        size_bytes=size_bytes,
        chunks_written=chunks_written,
    )


def audit_document_ingest_failed(request, filename: str, error: str):
    # Error text is truncated; it can quote file content
    audit(
        request,
        AuditEvent.DOCUMENT_INGEST_FAILED,
        outcome='failure',
        filename=filename,
        error=error[:200],
    )


def audit_model_pulled(request, model: str, outcome: str = 'success'):
    audit(request, AuditEvent.MODEL_PULLED, outcome=outcome, model=model)
