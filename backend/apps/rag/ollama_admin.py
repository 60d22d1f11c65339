"""
Model management on the Ollama host.

Lists the generation models the UI can pick from and asks Ollama to
pull new ones. The embedding model is hidden from the list since it
cannot answer questions.
"""
import logging
from typing import List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class OllamaAdminError(Exception):
    """Raised when the Ollama host cannot list or pull models."""
    pass


def get_ollama_url() -> str:
    """Get the Ollama base URL from settings."""
    return getattr(settings, 'OLLAMA_BASE_URL', 'http://localhost:11434')


def is_embedding_model(name: str, embed_model: Optional[str] = None) -> bool:
    """
    Check whether a model tag names the embedding model.

    Tags may carry a version suffix, e.g. "nomic-embed-text:latest".
    """
    embed_model = embed_model or getattr(settings, 'OLLAMA_EMBED_MODEL', 'nomic-embed-text')
    base = embed_model.split(':', 1)[0]
    return name == embed_model or name == f"{base}:latest" or name == base


def list_models() -> List[dict]:
    """
    List models installed on the Ollama host, excluding the embedding model.

    Returns:
        Ollama tag objects ({"name": ..., "size": ..., ...})

    Raises:
        OllamaAdminError: If Ollama is unreachable or answers badly
    """
    url = f"{get_ollama_url()}/api/tags"
    timeout = getattr(settings, 'OLLAMA_ADMIN_TIMEOUT', 10)

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.Timeout:
        raise OllamaAdminError("Ollama API timed out")
    except requests.exceptions.ConnectionError:
        raise OllamaAdminError(f"Cannot connect to Ollama at {get_ollama_url()}")
    except requests.exceptions.RequestException as e:
        raise OllamaAdminError(f"Request failed: {e}")
    except ValueError as e:
        raise OllamaAdminError(f"Invalid JSON from Ollama: {e}")

    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(models, list):
        raise OllamaAdminError("No model list in response")

    return [
        m for m in models
        if isinstance(m, dict) and isinstance(m.get("name"), str)
        and not is_embedding_model(m["name"])
    ]


def pull_model(name: str) -> None:
    """
    Ask Ollama to download a model and wait until it finishes.

    Raises:
        OllamaAdminError: If the pull fails or times out
    """
    url = f"{get_ollama_url()}/api/pull"
    timeout = getattr(settings, 'OLLAMA_PULL_TIMEOUT', 1800)

    logger.info(f"Pulling model {name}")

    try:
        response = requests.post(
            url,
            json={"name": name, "stream": False},
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise OllamaAdminError(f"Pulling {name} timed out")
    except requests.exceptions.RequestException as e:
        raise OllamaAdminError(f"Request failed: {e}")

    if response.status_code != 200:
        error_detail = response.text[:500] if response.text else "No details"
        raise OllamaAdminError(
            f"Ollama API returned {response.status_code}: {error_detail}"
        )

    logger.info(f"Model {name} pulled")
