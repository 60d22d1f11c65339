"""
RAG API views.

Provides endpoints for:
- Chat (full RAG turn with session memory)
- Listing and pulling generation models
"""
import logging
import json

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET
from django.utils.decorators import method_decorator

from apps.chat.store import SessionNotFoundError
from apps.rag.audit import audit_chat_failed, audit_chat_turn, audit_model_pulled
from apps.rag.chat import ChatEngineError, get_chat_engine
from apps.rag.embeddings import QueryValidationError, validate_query
from apps.rag.ollama_admin import OllamaAdminError, list_models, pull_model

logger = logging.getLogger(__name__)


def parse_session_id(value):
    """
    Validate the optional sessionId field of a chat request.

    Returns:
        int session id, or None for a new conversation

    Raises:
        ValueError: If the value is not a positive integer
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("sessionId must be an integer")
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        raise ValueError("sessionId must be a positive integer")
    return value


@method_decorator(csrf_exempt, name='dispatch')
class ChatView(View):
    """
    POST /api/chat

    Answer a question with grounding context and session memory.

    Request body:
        {
            "question": "What is the capital of France?",
            "model": "llama3.2",   // optional, default OLLAMA_CHAT_MODEL
            "sessionId": 12        // optional, omit or null to start a session
        }

    Response:
        {
            "answer": "Paris.",
            "sessionId": 12
        }
    """

    def post(self, request):
        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        if not isinstance(body, dict):
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        try:
            question = validate_query(body.get("question"))
        except QueryValidationError as e:
            return JsonResponse({"error": str(e)}, status=400)

        model = body.get("model") or None
        if model is not None and not isinstance(model, str):
            return JsonResponse({"error": "model must be a string"}, status=400)

        try:
            session_id = parse_session_id(body.get("sessionId"))
        except ValueError as e:
            return JsonResponse({"error": str(e)}, status=400)

        try:
            result = get_chat_engine().answer(
                question=question,
                model=model,
                session_id=session_id,
            )
        except SessionNotFoundError:
            logger.warning(f"Chat request for unknown session {session_id}")
            return JsonResponse({"error": "Session not found."}, status=404)
        except ChatEngineError as e:
            logger.error(f"Chat Error at step {e.step} (session={e.session_id})")
            audit_chat_failed(request, e.session_id, e.step)
            return JsonResponse({"error": "Brain malfunctioned."}, status=500)
        except Exception as e:
            logger.exception(f"Unexpected chat error: {e}")
            return JsonResponse({"error": "Brain malfunctioned."}, status=500)

        audit_chat_turn(
            request,
            session_id=result.session_id,
            question_length=len(question),
            new_session=result.created_session,
        )

        return JsonResponse(result.to_dict())


@csrf_exempt
@require_GET
def models_list(request):
    """
    GET /api/models

    Returns:
        {"models": [{"name": "llama3.2:latest", ...}]}
    """
    try:
        models = list_models()
    except OllamaAdminError as e:
        logger.error(f"Model listing failed: {e}")
        return JsonResponse({"error": "Could not reach Ollama."}, status=500)

    return JsonResponse({"models": models})


@method_decorator(csrf_exempt, name='dispatch')
class PullModelView(View):
    """
    POST /api/pull

    Request body:
        {"model": "llama3.2"}

    Response:
        {"message": "Model pulled successfully."}
    """

    def post(self, request):
        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        model = body.get("model") if isinstance(body, dict) else None
        if not isinstance(model, str) or not model.strip():
            return JsonResponse({"error": "model is required"}, status=400)

        try:
            pull_model(model.strip())
        except OllamaAdminError as e:
            logger.error(f"Model pull failed: {e}")
            audit_model_pulled(request, model, outcome='failure')
            return JsonResponse({"error": "Failed to pull model."}, status=500)

        audit_model_pulled(request, model)
        return JsonResponse({"message": "Model pulled successfully."})
