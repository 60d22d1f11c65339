"""
Bounded retries for embedding calls made during ingestion.

A document is embedded chunk by chunk, so one transient Ollama hiccup
would otherwise fail the whole upload. Failures that cannot improve on
a second try (bad request, unknown model, empty text) are raised at once.
"""
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from django.conf import settings

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryExhausted(Exception):
    """Raised when every attempt failed with a retriable error."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter."""
    max_retries: int = 3          # attempts = max_retries + 1
    initial_backoff: float = 2.0  # seconds
    backoff_multiplier: float = 2.0
    max_backoff: float = 30.0
    jitter_percent: float = 0.25  # ±25%

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff(self, attempt: int) -> float:
        """
        Delay before retry number `attempt` (0-indexed).

        Grows geometrically up to max_backoff, then jitter is applied.
        """
        delay = min(
            self.initial_backoff * (self.backoff_multiplier ** attempt),
            self.max_backoff,
        )
        spread = delay * self.jitter_percent
        return max(0.0, delay + random.uniform(-spread, spread))


def get_embedding_retry_policy() -> RetryPolicy:
    """Retry policy for ingestion embeddings, from settings."""
    return RetryPolicy(
        max_retries=getattr(settings, 'EMBED_RETRY_MAX_RETRIES', 3),
        initial_backoff=getattr(settings, 'EMBED_RETRY_INITIAL_BACKOFF', 2.0),
    )


def is_retriable_error(exception: Exception) -> bool:
    """
    Decide whether another attempt could succeed.

    Errors that carry a `retriable` flag (EmbeddingError) are trusted.
    Anything else is retried, since the attempt count is bounded.
    """
    retriable = getattr(exception, 'retriable', None)
    if retriable is not None:
        return bool(retriable)
    return True


def retry_with_backoff(
    func: Callable[[], T],
    policy: RetryPolicy,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func until it succeeds or the policy runs out of attempts.

    Args:
        func: Zero-argument callable
        policy: Backoff and attempt limits
        exceptions: Exception types that count as failed attempts
        on_retry: Called as on_retry(attempt, exception, delay) before sleeping
        sleep: Wait function, replaced in tests

    Returns:
        Whatever func returns

    Raises:
        RetryExhausted: If the last allowed attempt failed
        Exception: The original error if it is not retriable
    """
    for attempt in range(policy.max_attempts):
        try:
            return func()
        except exceptions as e:
            if not is_retriable_error(e):
                logger.warning(f"Giving up on non-retriable error: {e}")
                raise

            if attempt == policy.max_retries:
                raise RetryExhausted(
                    f"All {policy.max_attempts} attempts failed. Last error: {e}",
                    attempts=policy.max_attempts,
                    last_exception=e,
                ) from e

            delay = policy.backoff(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            if on_retry:
                on_retry(attempt, e, delay)
            sleep(delay)
