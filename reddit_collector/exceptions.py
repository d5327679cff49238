"""Exception hierarchy for the Reddit content collector."""

from typing import Any, Dict, List, Optional


class RedditCollectorError(Exception):
    """Base class for all collector errors."""


class ConfigurationError(RedditCollectorError):
    """Raised at startup when required configuration is missing or invalid."""


class RedditAPIError(RedditCollectorError):
    """An upstream API call failed with an unexpected response."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        self.message = message
        self.status = status
        self.body = body
        super().__init__(message)

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.message} (HTTP {self.status})"
        return self.message


class AuthenticationError(RedditAPIError):
    """Credentials were rejected or the access token is no longer accepted."""


class RateLimitError(RedditAPIError):
    """The API throttled the request.

    Carries the number of seconds the caller should wait before trying again.
    The collector never retries on its own.
    """

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message, status=429)
        self.retry_after = retry_after

    def __str__(self) -> str:
        return f"{self.message} (retry after {self.retry_after:g}s)"


class NetworkError(RedditAPIError):
    """The API could not be reached (DNS, refused connection, timeout)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause!r}"
        return self.message


class ContentValidationError(RedditCollectorError):
    """A single thread could not be parsed or normalized."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)


class ContentRetrievalError(RedditCollectorError):
    """A whole retrieval batch produced no usable thread."""

    def __init__(
        self,
        message: str,
        subreddit: str,
        post_ids: List[str],
        cause: Optional[BaseException] = None,
        errors: Optional[Dict[str, str]] = None,
    ):
        self.subreddit = subreddit
        self.post_ids = list(post_ids)
        self.cause = cause
        self.errors = dict(errors or {})
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.args[0]} (r/{self.subreddit}, ids={self.post_ids})"
