"""Rate limiting functionality for Reddit API requests."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from reddit_collector.config import RateLimitConfig

logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[Any], default: float = 60.0) -> float:
    """
    Parse a Retry-After header value into seconds.

    Args:
        value: Raw header value (seconds), may be missing or malformed
        default: Seconds to use when the header cannot be parsed

    Returns:
        Non-negative number of seconds to wait
    """
    if value is None or value == "":
        return default
    try:
        seconds = float(value)
    except (ValueError, TypeError):
        logger.warning(f"Failed to parse Retry-After header {value!r}, using {default}s")
        return default
    if seconds < 0:
        return default
    return seconds


@dataclass
class RateLimitStatus:
    """Snapshot of the quota as last reported by the API."""

    allowed: bool
    limit: int
    current_usage: Optional[int] = None
    remaining: Optional[int] = None
    retry_after: Optional[float] = None
    reset_timestamp: Optional[float] = None


class RateLimiter:
    """
    Request pacer for Reddit API requests.

    Monitors X-Ratelimit headers and spaces requests so the shared quota is not
    exhausted. It never retries a throttled request; 429 handling belongs to the
    caller.
    """

    def __init__(self, config: RateLimitConfig):
        """
        Initialize the rate limiter with configuration.

        Args:
            config: Rate limiting configuration
        """
        self.config = config
        self.remaining_calls: Optional[int] = None
        self.used_calls: Optional[int] = None
        self.reset_timestamp: Optional[float] = None
        self.last_request_time = 0.0

        # Absolute rate limit calculation
        self.min_interval = 60.0 / self.config.max_requests_per_minute

    async def pre_request(self) -> None:
        """
        Check rate limits before making a request and sleep if necessary.

        This should be called before each Reddit API request.
        """
        now = time.time()
        elapsed = now - self.last_request_time
        if elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)

        if (self.remaining_calls is not None and
                self.reset_timestamp is not None and
                self.remaining_calls < self.config.min_remaining_calls):

            wait_time = self.reset_timestamp - time.time() + self.config.sleep_buffer_sec
            if wait_time > 0:
                logger.info(f"Rate limit approaching: {self.remaining_calls} calls remaining. "
                            f"Sleeping for {wait_time:.2f}s until reset.")
                await asyncio.sleep(wait_time)
            self.remaining_calls = None
            self.reset_timestamp = None

    def update_from_headers(self, headers: Mapping[str, Any]) -> None:
        """
        Update rate limit tracking based on Reddit API response headers.

        Args:
            headers: Response headers from a Reddit API request
        """
        self.last_request_time = time.time()
        lowered = {str(k).lower(): v for k, v in headers.items()}

        if "x-ratelimit-remaining" in lowered:
            try:
                self.remaining_calls = int(float(lowered["x-ratelimit-remaining"]))
            except (ValueError, TypeError):
                logger.warning("Failed to parse x-ratelimit-remaining header")

        if "x-ratelimit-used" in lowered:
            try:
                self.used_calls = int(float(lowered["x-ratelimit-used"]))
            except (ValueError, TypeError):
                logger.warning("Failed to parse x-ratelimit-used header")

        if "x-ratelimit-reset" in lowered:
            try:
                reset_seconds = float(lowered["x-ratelimit-reset"])
                self.reset_timestamp = time.time() + reset_seconds
            except (ValueError, TypeError):
                logger.warning("Failed to parse x-ratelimit-reset header")

        if self.remaining_calls is not None and self.reset_timestamp is not None:
            reset_in = self.reset_timestamp - time.time()
            logger.debug(f"Rate limit status: {self.remaining_calls} calls remaining, "
                         f"reset in {reset_in:.2f}s")

    def get_status(self, now: Optional[float] = None) -> RateLimitStatus:
        """
        Report whether a request may be sent without waiting for a quota reset.

        Args:
            now: Reference epoch seconds (defaults to the current time)

        Returns:
            RateLimitStatus built from the most recent rate-limit headers
        """
        if now is None:
            now = time.time()
        limit = self.config.max_requests_per_minute

        usage = self.used_calls
        if usage is None and self.remaining_calls is not None:
            usage = max(0, limit - self.remaining_calls)

        retry_after = None
        if (self.remaining_calls is not None and
                self.reset_timestamp is not None and
                self.remaining_calls < self.config.min_remaining_calls and
                self.reset_timestamp > now):
            retry_after = self.reset_timestamp - now

        return RateLimitStatus(
            allowed=retry_after is None,
            limit=limit,
            current_usage=usage,
            remaining=self.remaining_calls,
            retry_after=retry_after,
            reset_timestamp=self.reset_timestamp,
        )
