"""
Conversation store for chat sessions and their messages.

Two implementations share one interface:
- DjangoConversationStore: PostgreSQL (or sqlite) through the Django ORM
- InMemoryConversationStore: process-local, for local runs and tests

Every operation is atomic on its own. Nothing here spans multiple
statements, so a chat turn's user and assistant messages are two
independent writes.
"""
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError

from apps.chat.models import ChatSession, MessageRole, SessionMessage

logger = logging.getLogger(__name__)

# Session titles are the first question, cut at this many characters
TITLE_MAX_LENGTH = 30
TITLE_ELLIPSIS = '...'

VALID_ROLES = (MessageRole.USER.value, MessageRole.ASSISTANT.value)


class PersistenceError(Exception):
    """Raised when the conversation store cannot be read or written."""
    pass


class SessionNotFoundError(Exception):
    """Raised when a session id does not match any stored session."""

    def __init__(self, session_id):
        super().__init__(f"Session {session_id} does not exist")
        self.session_id = session_id


def derive_title(question: str) -> str:
    """
    Build a session title from the first question of a conversation.

    Questions up to 30 characters are used verbatim, longer ones are cut
    and suffixed with an ellipsis marker.
    """
    if len(question) > TITLE_MAX_LENGTH:
        return question[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return question


@dataclass
class SessionRecord:
    """A stored conversation."""
    id: int
    title: str
    created_at: datetime

    def to_dict(self) -> dict:
        """Convert to the JSON shape used by the sessions endpoint."""
        return {
            "id": self.id,
            "title": self.title,
        }


@dataclass
class MessageRecord:
    """A stored message."""
    id: int
    session_id: int
    role: str
    content: str
    created_at: datetime

    def to_dict(self) -> dict:
        """Convert to the JSON shape used by the history endpoint."""
        return {
            "role": self.role,
            "content": self.content,
        }


class ConversationStore(ABC):
    """Abstract base class for session/message persistence."""

    @abstractmethod
    def create_session(self, title: str) -> int:
        """Create a session and return its id."""
        pass

    @abstractmethod
    def session_exists(self, session_id: int) -> bool:
        """Return True if the session is stored."""
        pass

    @abstractmethod
    def list_sessions(self) -> List[SessionRecord]:
        """Return all sessions, most recently created first."""
        pass

    @abstractmethod
    def append_message(self, session_id: int, role: str, content: str) -> int:
        """Append a message to a session and return the message id."""
        pass

    @abstractmethod
    def get_recent_messages(self, session_id: int, limit: int) -> List[MessageRecord]:
        """Return up to `limit` latest messages of a session, newest first."""
        pass

    @abstractmethod
    def get_full_history(self, session_id: int) -> List[MessageRecord]:
        """Return every message of a session, oldest first."""
        pass

    @abstractmethod
    def delete_session(self, session_id: int) -> bool:
        """
        Delete a session together with its messages.

        Returns:
            True if the session existed
        """
        pass


def _check_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid message role: {role!r}")


class DjangoConversationStore(ConversationStore):
    """Conversation store backed by the chat_sessions / session_messages tables."""

    @staticmethod
    def _to_message(row: SessionMessage) -> MessageRecord:
        return MessageRecord(
            id=row.id,
            session_id=row.session_id,
            role=row.role,
            content=row.content,
            created_at=row.created_at,
        )

    def create_session(self, title: str) -> int:
        try:
            session = ChatSession.objects.create(title=title)
        except DatabaseError as e:
            logger.error(f"Failed to create session: {e}")
            raise PersistenceError("Could not create session") from e

        logger.info(f"Created session {session.pk}")
        return session.pk

    def session_exists(self, session_id: int) -> bool:
        try:
            return ChatSession.objects.filter(pk=session_id).exists()
        except DatabaseError as e:
            logger.error(f"Failed to look up session {session_id}: {e}")
            raise PersistenceError("Could not look up session") from e

    def list_sessions(self) -> List[SessionRecord]:
        try:
            rows = list(ChatSession.objects.order_by('-id'))
        except DatabaseError as e:
            logger.error(f"Failed to list sessions: {e}")
            raise PersistenceError("Could not list sessions") from e

        return [
            SessionRecord(id=row.pk, title=row.title, created_at=row.created_at)
            for row in rows
        ]

    def append_message(self, session_id: int, role: str, content: str) -> int:
        _check_role(role)
        try:
            message = SessionMessage.objects.create(
                session_id=session_id,
                role=role,
                content=content,
            )
        except DatabaseError as e:
            logger.error(f"Failed to append {role} message to session {session_id}: {e}")
            raise PersistenceError("Could not save message") from e

        logger.debug(f"Appended {role} message {message.pk} to session {session_id}")
        return message.pk

    def get_recent_messages(self, session_id: int, limit: int) -> List[MessageRecord]:
        try:
            rows = list(
                SessionMessage.objects
                .filter(session_id=session_id)
                .order_by('-id')[:limit]
            )
        except DatabaseError as e:
            logger.error(f"Failed to load recent messages for session {session_id}: {e}")
            raise PersistenceError("Could not load messages") from e

        return [self._to_message(row) for row in rows]

    def get_full_history(self, session_id: int) -> List[MessageRecord]:
        try:
            rows = list(
                SessionMessage.objects
                .filter(session_id=session_id)
                .order_by('id')
            )
        except DatabaseError as e:
            logger.error(f"Failed to load history for session {session_id}: {e}")
            raise PersistenceError("Could not load history") from e

        return [self._to_message(row) for row in rows]

    def delete_session(self, session_id: int) -> bool:
        try:
            _, per_model = ChatSession.objects.filter(pk=session_id).delete()
        except DatabaseError as e:
            logger.error(f"Failed to delete session {session_id}: {e}")
            raise PersistenceError("Could not delete session") from e

        deleted = per_model.get(ChatSession._meta.label, 0) > 0
        if deleted:
            logger.info(f"Deleted session {session_id} and its messages")
        return deleted


class InMemoryConversationStore(ConversationStore):
    """
    Process-local conversation store.

    Ids are allocated from monotonically increasing counters, mirroring
    database sequences. Unknown session ids are accepted by append_message,
    like a table without a foreign key.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._session_ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self._sessions: Dict[int, SessionRecord] = {}
        self._messages: List[MessageRecord] = []

    def create_session(self, title: str) -> int:
        with self._lock:
            session_id = next(self._session_ids)
            self._sessions[session_id] = SessionRecord(
                id=session_id,
                title=title,
                created_at=datetime.now(timezone.utc),
            )
        return session_id

    def session_exists(self, session_id: int) -> bool:
        with self._lock:
            return session_id in self._sessions

    def list_sessions(self) -> List[SessionRecord]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.id, reverse=True)

    def append_message(self, session_id: int, role: str, content: str) -> int:
        _check_role(role)
        with self._lock:
            message_id = next(self._message_ids)
            self._messages.append(MessageRecord(
                id=message_id,
                session_id=session_id,
                role=role,
                content=content,
                created_at=datetime.now(timezone.utc),
            ))
        return message_id

    def get_recent_messages(self, session_id: int, limit: int) -> List[MessageRecord]:
        with self._lock:
            rows = [m for m in self._messages if m.session_id == session_id]
        rows.reverse()
        return rows[:limit]

    def get_full_history(self, session_id: int) -> List[MessageRecord]:
        with self._lock:
            return [m for m in self._messages if m.session_id == session_id]

    def delete_session(self, session_id: int) -> bool:
        with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
            self._messages = [m for m in self._messages if m.session_id != session_id]
        return existed


# =============================================================================
# Store Factory
# =============================================================================

_store_instance: Optional[ConversationStore] = None


def get_conversation_store() -> ConversationStore:
    """
    Get the configured conversation store.

    Uses CONVERSATION_STORE_BACKEND to pick the implementation:
    - "django" (default): ORM-backed tables
    - "memory": process-local store
    """
    global _store_instance

    if _store_instance is not None:
        return _store_instance

    backend = getattr(settings, 'CONVERSATION_STORE_BACKEND', 'django').lower()

    if backend == 'memory':
        logger.info("Using in-memory conversation store")
        _store_instance = InMemoryConversationStore()
    elif backend == 'django':
        _store_instance = DjangoConversationStore()
    else:
        raise ValueError(
            f"Invalid CONVERSATION_STORE_BACKEND: {backend}. "
            f"Must be 'django' or 'memory'."
        )

    return _store_instance


def reset_conversation_store():
    """Reset the cached store instance. Useful for testing."""
    global _store_instance
    _store_instance = None
