"""
Retry Helper - Error classification and back-off for remote calls

Every failure coming out of the ListenBrainz client is a CatalogError tagged
with an ErrorKind. The kind decides whether the call may be re-issued;
retry_with_backoff re-issues only the retryable ones.
"""
import time
import logging
from enum import Enum
from functools import wraps
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""

    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"
    REMOTE_FATAL = "remote_fatal"
    DECODE = "decode"
    DOMAIN = "domain"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT_NETWORK, ErrorKind.RATE_LIMITED)


class CatalogError(Exception):
    """A classified ListenBrainz failure."""

    def __init__(self, kind: ErrorKind, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"CatalogError(kind={self.kind.value}, code={self.code}, message={self.message!r})"


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float = 30.0,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Decorator that re-issues a call while it fails with a retryable CatalogError

    Non-retryable errors propagate on the first occurrence.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds before first retry
        backoff_multiplier: Multiplier for delay after each retry
        max_delay: Maximum delay between retries in seconds
        sleep: Sleep function (defaults to time.sleep at call time)

    Example:
        @retry_with_backoff(max_retries=3, initial_delay=1.0)
        def get_playlist(self, playlist_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except CatalogError as e:
                    if not e.retryable:
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} retries: {e}"
                        )
                        raise

                    logger.warning(
                        f"{func.__name__} failed with {e.kind.value} (attempt {attempt + 1}/{max_retries + 1}), "
                        f"retrying in {delay:.1f}s: {e}"
                    )

                    (sleep or time.sleep)(delay)
                    delay = min(delay * backoff_multiplier, max_delay)

        return wrapper
    return decorator
