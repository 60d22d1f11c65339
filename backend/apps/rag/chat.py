"""
Chat engine for RAG conversations.

One call to ChatEngine.answer() is one chat turn:
1. Resolve (or create) the session
2. Log the user's question
3. Retrieve grounding context for the question
4. Load the session's short-term memory
5. Assemble the prompt
6. Generate the answer
7. Log the answer

The question is written before anything can fail, and is never rolled
back: a failed turn leaves an unanswered question in the session.
Concurrent turns on one session are not serialized, so their messages
may interleave.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar

from django.conf import settings

from apps.chat.store import (
    ConversationStore,
    MessageRecord,
    PersistenceError,
    SessionNotFoundError,
    derive_title,
    get_conversation_store,
)
from apps.rag.embeddings import EmbeddingError, OllamaEmbedder, get_embedder
from apps.rag.llm_client import BaseLLMClient, LLMError, get_llm_client
from apps.rag.prompts import PromptTemplate, get_prompt_template
from apps.rag.retrieval import ChunkStore, ChunkStoreError, build_context, get_chunk_store

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Default retrieval parameters
DEFAULT_TOP_K = 1
DEFAULT_HISTORY_LIMIT = 6

# Collaborator failures that end a chat turn
COLLABORATOR_ERRORS = (EmbeddingError, ChunkStoreError, LLMError, PersistenceError)


class ChatEngineError(Exception):
    """
    Raised when a chat turn cannot be completed.

    Carries the failed step and the session id for logging only; callers
    should show a generic message.
    """

    def __init__(self, step: str, session_id: Optional[int] = None):
        super().__init__(f"Chat turn failed at step '{step}'")
        self.step = step
        self.session_id = session_id


@dataclass
class ChatAnswer:
    """Result of a chat turn."""
    answer: str
    session_id: int
    created_session: bool = False

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "answer": self.answer,
            "sessionId": self.session_id,
        }


def render_history(messages: List[MessageRecord], question: str) -> str:
    """
    Render chronological messages as "User: ..." / "Assistant: ..." lines.

    Messages whose content equals the current question are dropped, which
    removes the just-logged question and any duplicate from quick retries.
    """
    lines = []
    for message in messages:
        if message.content == question:
            continue
        speaker = 'User' if message.role == 'user' else 'Assistant'
        lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


class ChatEngine:
    """Runs chat turns against the configured stores and Ollama clients."""

    def __init__(
        self,
        embedder: Optional[OllamaEmbedder] = None,
        chunk_store: Optional[ChunkStore] = None,
        conversation_store: Optional[ConversationStore] = None,
        llm_client: Optional[BaseLLMClient] = None,
        prompt_template: Optional[PromptTemplate] = None,
        top_k: Optional[int] = None,
        history_limit: Optional[int] = None,
        validate_session_id: Optional[bool] = None,
        default_model: Optional[str] = None,
    ):
        self.embedder = embedder or get_embedder()
        self.chunk_store = chunk_store or get_chunk_store()
        self.conversation_store = conversation_store or get_conversation_store()
        self.llm_client = llm_client or get_llm_client()
        self.prompt_template = prompt_template or get_prompt_template()
        self.top_k = top_k or getattr(settings, 'RAG_TOP_K', DEFAULT_TOP_K)
        self.history_limit = history_limit or getattr(settings, 'RAG_HISTORY_LIMIT', DEFAULT_HISTORY_LIMIT)
        if validate_session_id is None:
            validate_session_id = getattr(settings, 'CHAT_VALIDATE_SESSION_ID', True)
        self.validate_session_id = validate_session_id
        self.default_model = default_model or getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')

    def _step(self, name: str, session_id: Optional[int], func: Callable[[], T]) -> T:
        """Run one fallible step, converting collaborator errors to ChatEngineError."""
        try:
            return func()
        except COLLABORATOR_ERRORS as e:
            logger.error(f"Chat step '{name}' failed (session={session_id}): {e}")
            raise ChatEngineError(name, session_id) from e

    def _resolve_session(self, question: str, session_id: Optional[int]) -> int:
        if session_id is None:
            return self.conversation_store.create_session(derive_title(question))

        if self.validate_session_id and not self.conversation_store.session_exists(session_id):
            raise SessionNotFoundError(session_id)
        return session_id

    def retrieve_context(self, question: str) -> str:
        """Embed the question and return the nearest chunk text from the whole corpus."""
        vector = self.embedder.embed(question)
        chunks = self.chunk_store.nearest(vector, self.top_k)
        if chunks:
            logger.info(
                f"Retrieved {len(chunks)} chunk(s), best distance "
                f"{chunks[0].distance:.4f} from {chunks[0].source_file}"
            )
        else:
            logger.info("Corpus is empty, generating without context")
        return build_context(chunks)

    def load_history(self, session_id: int, question: str) -> str:
        """Render the latest messages of a session, oldest first."""
        recent = self.conversation_store.get_recent_messages(session_id, self.history_limit)
        return render_history(list(reversed(recent)), question)

    def answer(
        self,
        question: str,
        model: Optional[str] = None,
        session_id: Optional[int] = None,
    ) -> ChatAnswer:
        """
        Answer a question within a session.

        Args:
            question: The user's question (stored verbatim)
            model: Generation model name, defaults to OLLAMA_CHAT_MODEL
            session_id: Existing session, or None to start a new one

        Returns:
            ChatAnswer with the answer and the session id used

        Raises:
            SessionNotFoundError: If validation is on and session_id is unknown
            ChatEngineError: If any collaborator fails
        """
        model = model or self.default_model
        created_session = session_id is None
        logger.info(f"Query received | Session: {session_id or 'NEW'} | model={model}")

        session_id = self._step(
            'resolve_session', session_id,
            lambda: self._resolve_session(question, session_id),
        )

        self._step(
            'log_question', session_id,
            lambda: self.conversation_store.append_message(session_id, 'user', question),
        )

        context = self._step(
            'retrieve_context', session_id,
            lambda: self.retrieve_context(question),
        )

        history = self._step(
            'load_history', session_id,
            lambda: self.load_history(session_id, question),
        )

        prompt = self.prompt_template.render(
            context=context,
            history=history,
            question=question,
        )
        logger.debug(f"Prompt ({self.prompt_template.version}):\n{prompt}")

        response = self._step(
            'generate', session_id,
            lambda: self.llm_client.generate(prompt, model),
        )

        self._step(
            'log_answer', session_id,
            lambda: self.conversation_store.append_message(session_id, 'assistant', response.content),
        )

        return ChatAnswer(
            answer=response.content,
            session_id=session_id,
            created_session=created_session,
        )


def get_chat_engine() -> ChatEngine:
    """Build a chat engine wired to the configured collaborators."""
    return ChatEngine()
