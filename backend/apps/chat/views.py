"""
Session and history views.

Provides endpoints for:
- GET /api/sessions - List conversations, newest first
- GET /api/history/<id> - Messages of one conversation, oldest first
- DELETE /api/sessions/<id> - Delete a conversation and its messages
"""
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from apps.chat.store import PersistenceError, get_conversation_store
from apps.rag.audit import audit_session_deleted

logger = logging.getLogger(__name__)


@csrf_exempt
@require_GET
def list_sessions(request):
    """
    List all chat sessions.

    Returns:
        {"sessions": [{"id": 3, "title": "What is the capital of Fra..."}]}
    """
    try:
        sessions = get_conversation_store().list_sessions()
    except PersistenceError as e:
        logger.error(f"Failed to load sessions: {e}")
        return JsonResponse({"error": "Failed to load sessions."}, status=500)

    return JsonResponse({"sessions": [s.to_dict() for s in sessions]})


@csrf_exempt
@require_GET
def session_history(request, session_id):
    """
    Full message history of a session.

    Returns:
        {"history": [{"role": "user", "content": "..."}, ...]}
    """
    store = get_conversation_store()

    try:
        if getattr(settings, 'CHAT_VALIDATE_SESSION_ID', True) and not store.session_exists(session_id):
            return JsonResponse({"error": "Session not found."}, status=404)
        messages = store.get_full_history(session_id)
    except PersistenceError as e:
        logger.error(f"Failed to load history for session {session_id}: {e}")
        return JsonResponse({"error": "Failed to load history."}, status=500)

    return JsonResponse({"history": [m.to_dict() for m in messages]})


@csrf_exempt
@require_http_methods(["DELETE"])
def delete_session(request, session_id):
    """
    Delete a session; its messages are removed with it.

    Returns:
        {"message": "Session deleted."}
    """
    try:
        deleted = get_conversation_store().delete_session(session_id)
    except PersistenceError as e:
        logger.error(f"Failed to delete session {session_id}: {e}")
        return JsonResponse({"error": "Failed to delete session."}, status=500)

    if not deleted:
        return JsonResponse({"error": "Session not found."}, status=404)

    audit_session_deleted(request, session_id)
    return JsonResponse({"message": "Session deleted."})
