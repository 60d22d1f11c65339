"""
Text generation for the chat engine.

The engine only needs "prompt in, answer out", so generation sits behind
BaseLLMClient. OllamaClient calls /api/generate with streaming off and
returns the whole answer once the model is done.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from django.conf import settings

from apps.rag.ollama import OllamaRequestError, post_json

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """A generated answer and the model that produced it."""
    content: str
    model: str


class LLMError(Exception):
    """Raised when no answer could be generated."""
    pass


class BaseLLMClient(ABC):
    """Interface for answer generation."""

    @abstractmethod
    def generate(self, prompt: str, model: str) -> LLMResponse:
        """
        Generate an answer for a fully assembled prompt.

        Raises:
            LLMError: If the model host fails or returns nothing
        """
        pass


class OllamaClient(BaseLLMClient):
    """Non-streaming client for Ollama's /api/generate."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url or getattr(settings, 'OLLAMA_BASE_URL', 'http://localhost:11434')
        # Large local models can take minutes on CPU
        self.timeout = timeout or getattr(settings, 'OLLAMA_CHAT_TIMEOUT', 600)
        self._transport = transport

    def generate(self, prompt: str, model: str) -> LLMResponse:
        logger.info(f"Generating with {model} ({len(prompt)} prompt chars)")

        try:
            data = post_json(
                self.base_url,
                "/api/generate",
                {"model": model, "prompt": prompt, "stream": False},
                timeout=self.timeout,
                transport=self._transport,
            )
        except OllamaRequestError as e:
            raise LLMError(str(e)) from e

        # {"model": ..., "response": "...", "done": true, ...}
        content = data.get("response")
        if not isinstance(content, str):
            raise LLMError("No response text from Ollama")

        logger.info(f"Generated {len(content)} chars with {model}")
        return LLMResponse(content=content, model=model)


_client_instance: Optional[BaseLLMClient] = None


def get_llm_client() -> BaseLLMClient:
    """Get the shared generation client (lazy initialization)."""
    global _client_instance
    if _client_instance is None:
        _client_instance = OllamaClient()
    return _client_instance


def reset_llm_client():
    """Drop the shared client. Used by tests."""
    global _client_instance
    _client_instance = None
