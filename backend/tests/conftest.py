"""
Shared fixtures for the backend tests.

pytest-django configures Django from config.settings. Most tests run against
the in-memory stores and fake Ollama clients below; tests that need the
ORM ask for the test database with the django_db mark.
"""
from typing import List, Optional

import pytest

from apps.chat.store import InMemoryConversationStore, reset_conversation_store
from apps.rag.embeddings import EmbeddingError, reset_embedder
from apps.rag.llm_client import BaseLLMClient, LLMError, LLMResponse, reset_llm_client
from apps.rag.retrieval import Chunk, InMemoryChunkStore, reset_chunk_store


class KeywordEmbedder:
    """
    Deterministic embedder: one dimension per keyword, plus a constant bias.

    Texts sharing keywords end up close in cosine distance.
    """

    KEYWORDS = ('france', 'paris', 'python', 'database')

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        lowered = text.lower()
        return [1.0 if k in lowered else 0.0 for k in self.KEYWORDS] + [0.1]


class ScriptedLLM(BaseLLMClient):
    """LLM fake that records prompts and returns queued answers."""

    def __init__(self, answers=None, fail_with: Optional[Exception] = None):
        self.answers = list(answers or [])
        self.fail_with = fail_with
        self.prompts: List[str] = []
        self.models: List[str] = []

    def generate(self, prompt: str, model: str) -> LLMResponse:
        self.prompts.append(prompt)
        self.models.append(model)
        if self.fail_with is not None:
            raise self.fail_with
        content = self.answers.pop(0) if self.answers else "I don't know."
        return LLMResponse(content=content, model=model)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached clients and stores between tests."""
    yield
    reset_embedder()
    reset_llm_client()
    reset_chunk_store()
    reset_conversation_store()


@pytest.fixture
def conversation_store():
    return InMemoryConversationStore()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def chunk_store(embedder):
    """Chunk store seeded with two short documents."""
    store = InMemoryChunkStore()
    for source, text in [
        ('geo.txt', 'Paris is the capital of France.'),
        ('lang.txt', 'Python is a programming language.'),
    ]:
        store.insert(Chunk(source_file=source, text=text, vector=embedder.embed(text)))
    embedder.calls.clear()
    return store


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def failing_embedder():
    return KeywordEmbedder(fail_with=EmbeddingError("Could not connect to embedding service"))


@pytest.fixture
def failing_llm():
    return ScriptedLLM(fail_with=LLMError("Ollama service timed out"))
