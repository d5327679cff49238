"""OAuth2 access token acquisition and refresh for the Reddit API."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import aiohttp

from reddit_collector.collector.rate_limiter import parse_retry_after
from reddit_collector.config import Config
from reddit_collector.exceptions import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    RedditAPIError,
)

logger = logging.getLogger(__name__)

# Tokens are refreshed this many seconds before they actually expire
TOKEN_SAFETY_BUFFER_SEC = 60


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the moment it was issued."""

    value: str
    issued_at: float
    ttl_seconds: float
    token_type: str = "bearer"
    scope: str = ""

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.ttl_seconds

    def is_valid(self, now: float) -> bool:
        """True while ``now`` is before expiry minus the safety buffer."""
        return now < self.expires_at - TOKEN_SAFETY_BUFFER_SEC

    def __repr__(self) -> str:
        return (
            f"AccessToken(value='***', issued_at={self.issued_at}, "
            f"ttl_seconds={self.ttl_seconds}, token_type='{self.token_type}')"
        )


class TokenLifecycleManager:
    """
    Keeps a valid access token available for outbound requests.

    The token lives only in memory. It is replaced on refresh and dropped as soon
    as the API rejects it.
    """

    def __init__(
        self,
        config: Config,
        session: aiohttp.ClientSession,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the token manager.

        Args:
            config: Application configuration with Reddit credentials
            session: Shared HTTP session used for the credential exchange
            clock: Source of the current epoch time in seconds
        """
        self.config = config
        self.session = session
        self.clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_sec)

    @property
    def token(self) -> Optional[AccessToken]:
        return self._token

    def has_valid_token(self) -> bool:
        return self._token is not None and self._token.is_valid(self.clock())

    def invalidate(self) -> None:
        """Drop the cached token so the next call performs a fresh exchange."""
        if self._token is not None:
            logger.info("Clearing cached Reddit access token")
        self._token = None

    async def ensure_valid_token(self) -> AccessToken:
        """
        Return a token that is valid for at least the safety buffer.

        Returns:
            The cached token, or a freshly exchanged one

        Raises:
            AuthenticationError: If the credentials are rejected
            RateLimitError: If the token endpoint throttles the exchange
            NetworkError: If the token endpoint cannot be reached
        """
        if self.has_valid_token():
            return self._token

        async with self._lock:
            # Another waiter may have refreshed while we were blocked
            if self.has_valid_token():
                return self._token
            self._token = await self._exchange_credentials()
            return self._token

    async def _exchange_credentials(self) -> AccessToken:
        logger.info("Authenticating with Reddit API")
        form = {
            "grant_type": "password",
            "username": self.config.username,
            "password": self.config.password,
        }
        headers = {"User-Agent": self.config.user_agent}

        try:
            async with self.session.post(
                self.config.auth_url,
                data=form,
                headers=headers,
                auth=aiohttp.BasicAuth(self.config.client_id, self.config.client_secret),
                timeout=self._timeout,
            ) as response:
                status = response.status
                if status == 200:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        self._token = None
                        logger.error(f"Token endpoint returned an undecodable body: {e!r}")
                        raise AuthenticationError("Malformed token response", status=200) from e
                    return self._token_from_payload(payload)

                body = await response.text()
                retry_after = response.headers.get("Retry-After")
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            self._token = None
            logger.error(f"Network error during authentication: {e!r}")
            raise NetworkError("Network error during authentication", e) from e
        except aiohttp.ClientError as e:
            self._token = None
            logger.error(f"HTTP client error during authentication: {e!r}")
            raise NetworkError("HTTP client error during authentication", e) from e

        self._token = None
        if status in (400, 401, 403):
            logger.error(f"Authentication failed with HTTP {status}")
            raise AuthenticationError("Invalid Reddit credentials", status=status, body=body)
        if status == 429:
            wait = parse_retry_after(retry_after, self.config.rate_limit.default_retry_after_sec)
            logger.warning(f"Rate limited during authentication, retry after {wait:g}s")
            raise RateLimitError("Rate limited during authentication", retry_after=wait)

        logger.error(f"Authentication failed with unexpected HTTP {status}")
        raise RedditAPIError("Authentication failed", status=status, body=body)

    def _token_from_payload(self, payload: Dict[str, Any]) -> AccessToken:
        if not isinstance(payload, dict):
            self._token = None
            raise AuthenticationError("Malformed token response", status=200)

        # Reddit reports bad credentials as 200 {"error": "invalid_grant"}
        if "error" in payload or not payload.get("access_token"):
            self._token = None
            raise AuthenticationError(
                "Token exchange rejected",
                status=200,
                body=str(payload.get("error", "missing access_token")),
            )

        try:
            ttl = float(payload.get("expires_in", 3600))
        except (TypeError, ValueError):
            ttl = 3600.0

        token = AccessToken(
            value=payload["access_token"],
            issued_at=self.clock(),
            ttl_seconds=ttl,
            token_type=str(payload.get("token_type", "bearer")),
            scope=str(payload.get("scope", "")),
        )
        logger.info(f"Authentication successful, token valid for {ttl:.0f}s")
        return token
