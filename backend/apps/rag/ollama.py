"""
HTTP plumbing shared by the Ollama embedding and generation clients.

Every call gets its own timeout; transport failures are reported as
OllamaRequestError so each client can wrap them in its own error type.
"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class OllamaRequestError(Exception):
    """Raised when an Ollama endpoint cannot be reached or answers badly."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """Timeouts, connection errors and 5xx answers may succeed later."""
        return self.status_code is None or self.status_code >= 500


def post_json(
    base_url: str,
    path: str,
    payload: dict,
    timeout: float,
    transport: Optional[httpx.BaseTransport] = None,
) -> dict:
    """
    POST a JSON payload to Ollama and return the decoded JSON object.

    Raises:
        OllamaRequestError: On timeout, connection failure, HTTP error
            status or a body that is not a JSON object
    """
    url = f"{base_url}{path}"

    try:
        with httpx.Client(timeout=float(timeout), transport=transport) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.error(f"Ollama {path} returned {status}: {e.response.text[:200]}")
        raise OllamaRequestError(f"Ollama returned HTTP {status}", status_code=status)
    except httpx.TimeoutException:
        logger.error(f"Ollama {path} timed out after {timeout}s")
        raise OllamaRequestError(f"Ollama request to {path} timed out")
    except httpx.RequestError as e:
        logger.error(f"Ollama connection error on {path}: {e}")
        raise OllamaRequestError(f"Could not connect to Ollama at {base_url}")
    except ValueError as e:
        logger.error(f"Ollama {path} returned invalid JSON: {e}")
        raise OllamaRequestError(f"Invalid response from Ollama {path}")

    if not isinstance(data, dict):
        raise OllamaRequestError(f"Invalid response from Ollama {path}")
    return data
