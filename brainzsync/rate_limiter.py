"""
Rate Limiter - Backs off when ListenBrainz reports a nearly exhausted quota
"""
import time
import logging
from typing import Callable, Mapping

logger = logging.getLogger(__name__)

REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_IN_HEADER = "X-RateLimit-Reset-In"


class RateLimiter:
    """
    Header-driven rate limiter

    ListenBrainz reports the remaining quota and the seconds until it resets on
    every response, including error responses. When the remaining quota drops
    to the threshold the caller is blocked until the window resets.

    Usage:
        limiter = RateLimiter(threshold=5)

        response = session.get(url)
        limiter.check(response.headers)  # Will sleep if needed
    """

    def __init__(self, threshold: int = 5, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize rate limiter

        Args:
            threshold: Remaining-quota value at or below which to wait
            sleep: Sleep function (injected in tests)
        """
        if threshold < 0:
            raise ValueError("threshold must not be negative")

        self.threshold = threshold
        self._sleep = sleep
        self.total_waits = 0
        self.total_wait_time = 0

        logger.debug(f"Rate limiter initialized: waiting when remaining <= {threshold}")

    def check(self, headers: Mapping[str, str]) -> float:
        """
        Inspect response headers and sleep if the quota is nearly used up

        Returns:
            Seconds slept (0 when no wait was needed)
        """
        remaining = _header(headers, REMAINING_HEADER)
        reset_in = _header(headers, RESET_IN_HEADER)
        if remaining is None or reset_in is None:
            return 0

        logger.debug(f"ListenBrainz ratelimit check: remaining={remaining}, reset in={reset_in}s")

        try:
            remaining_int = int(remaining)
        except ValueError:
            logger.warning(f"Rate limit remaining is not a valid number: {remaining}")
            return 0

        try:
            reset_int = int(reset_in)
        except ValueError:
            logger.warning(f"Reset in is not a valid number: {reset_in}")
            return 0

        # Leave headroom for other clients sharing the same token
        if remaining_int > self.threshold:
            return 0

        wait = max(reset_int, 0)
        logger.warning(f"Approaching rate limit, delaying further processing for {wait} seconds")
        self._sleep(wait)
        self.total_waits += 1
        self.total_wait_time += wait
        return wait

    def reset(self):
        """Reset the rate limiter statistics"""
        self.total_waits = 0
        self.total_wait_time = 0

    def get_stats(self) -> dict:
        """Get statistics about rate limiting"""
        return {
            'total_waits': self.total_waits,
            'total_wait_time': self.total_wait_time,
            'avg_wait_time': self.total_wait_time / self.total_waits if self.total_waits > 0 else 0
        }


def _header(headers: Mapping[str, str], name: str):
    # requests' CaseInsensitiveDict handles case; plain dicts in tests may not
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value
