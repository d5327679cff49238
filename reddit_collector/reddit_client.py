"""Reddit API client wrapper for authenticated access."""

import logging
import time
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

import aiohttp

from reddit_collector.collector.executor import APIResponse, RateLimitAwareExecutor
from reddit_collector.collector.rate_limiter import RateLimitStatus
from reddit_collector.collector.stream import StreamPage, page_from_listing
from reddit_collector.collector.token_manager import TokenLifecycleManager
from reddit_collector.config import Config
from reddit_collector.exceptions import RedditAPIError, RedditCollectorError
from reddit_collector.monitoring.performance import ConnectionMetrics, CostMetrics, PerformanceMetrics

logger = logging.getLogger(__name__)

LISTING_SORTS = ("hot", "new", "top")


class RedditAPIClient:
    """
    Authenticated access to the Reddit endpoints used by the collector.

    Owns the HTTP session (unless one is injected), the token manager and the
    executor. Use as an async context manager::

        async with RedditAPIClient(config) as client:
            page = await client.get_listing("austinfood", "new")
    """

    def __init__(
        self,
        config: Config,
        session: Optional[aiohttp.ClientSession] = None,
        prometheus_exporter=None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the Reddit client with configuration.

        Args:
            config: Application configuration with Reddit credentials
            session: Optional externally managed HTTP session
            prometheus_exporter: Optional Prometheus exporter for metrics
            clock: Source of the current epoch time for token expiry
        """
        self.config = config
        self.prometheus_exporter = prometheus_exporter
        self._clock = clock
        self._owns_session = session is None
        self._session = session
        self.token_manager: Optional[TokenLifecycleManager] = None
        self.executor: Optional[RateLimitAwareExecutor] = None
        if session is not None:
            self._build(session)

    def _build(self, session: aiohttp.ClientSession) -> None:
        self.token_manager = TokenLifecycleManager(self.config, session, clock=self._clock)
        self.executor = RateLimitAwareExecutor(
            self.config,
            session,
            self.token_manager,
            prometheus_exporter=self.prometheus_exporter,
        )

    async def initialize(self) -> "RedditAPIClient":
        """
        Validate configuration and open the HTTP session.

        Raises:
            ConfigurationError: If required settings are missing
        """
        self.config.ensure_valid()
        if self._session is None:
            logger.info("Initializing Reddit API client")
            self._session = aiohttp.ClientSession()
            self._owns_session = True
            self._build(self._session)
        return self

    async def close(self) -> None:
        """Close the HTTP session if this client opened it."""
        if self._session is not None and self._owns_session:
            logger.info("Closing Reddit API client")
            await self._session.close()
            self._session = None
            self.token_manager = None
            self.executor = None

    async def __aenter__(self) -> "RedditAPIClient":
        return await self.initialize()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_executor(self) -> RateLimitAwareExecutor:
        if self.executor is None:
            raise RedditCollectorError("Reddit API client not initialized")
        return self.executor

    def _url(self, path: str) -> str:
        return f"{self.config.api_base_url.rstrip('/')}{path}"

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        return await self._require_executor().execute("GET", self._url(path), params=params)

    async def get_listing(
        self,
        subreddit: str,
        sort: str = "new",
        limit: int = 100,
        time_filter: Optional[str] = None,
        after: Optional[str] = None,
    ) -> StreamPage:
        """
        Fetch one page of ``/r/{subreddit}/{hot|new|top}``.

        Args:
            subreddit: Subreddit name
            sort: Listing sort (hot, new or top)
            limit: Items per page (max 100)
            time_filter: ``t`` parameter for top listings
            after: Pagination cursor

        Returns:
            StreamPage with the listing's posts and cursors
        """
        if sort not in LISTING_SORTS:
            raise ValueError(f"Unsupported listing sort {sort!r}")
        params: Dict[str, Any] = {"limit": min(limit, 100)}
        if time_filter:
            params["t"] = time_filter
        if after:
            params["after"] = after
        response = await self.get(f"/r/{subreddit}/{sort}", params=params)
        return page_from_listing(response.data)

    async def get_comment_stream_page(
        self,
        subreddit: str,
        after: Optional[str] = None,
        limit: int = 100,
    ) -> StreamPage:
        """Fetch one page of the newest comments across a subreddit."""
        params: Dict[str, Any] = {"limit": min(limit, 100), "sort": "new"}
        if after:
            params["after"] = after
        response = await self.get(f"/r/{subreddit}/comments", params=params)
        return page_from_listing(response.data)

    async def get_thread(
        self,
        subreddit: str,
        post_id: str,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
        depth: Optional[int] = None,
    ) -> APIResponse:
        """
        Fetch a post with its comment tree.

        Returns:
            APIResponse whose data is ``[submissionListing, commentListing]``
        """
        retrieval = self.config.retrieval
        params: Dict[str, Any] = {
            "limit": limit if limit is not None else retrieval.comment_limit,
            "sort": sort or retrieval.comment_sort,
        }
        depth = depth if depth is not None else retrieval.comment_depth
        if depth is not None:
            params["depth"] = depth
        return await self.get(f"/r/{subreddit}/comments/{post_id}", params=params)

    async def validate_authentication(self) -> bool:
        """
        Check that the credentials work by calling ``/api/v1/me``.

        Returns:
            True if the identity check succeeded
        """
        try:
            response = await self.get("/api/v1/me")
        except RedditAPIError as e:
            logger.error(f"Authentication validation failed: {e}")
            if self.token_manager is not None:
                self.token_manager.invalidate()
            return False

        name = response.data.get("name") if isinstance(response.data, dict) else None
        logger.info(f"Authentication validated for user {name or 'unknown'}")
        return True

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self._require_executor().get_performance_metrics()

    def get_connection_metrics(self) -> ConnectionMetrics:
        return self._require_executor().get_connection_metrics()

    def get_cost_metrics(self) -> CostMetrics:
        return self._require_executor().get_cost_metrics()

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._require_executor().rate_limiter.get_status()

    async def health_check(self) -> Dict[str, Any]:
        """Run an identity check and report it with the connection counters."""
        is_valid = await self.validate_authentication()
        return {
            "status": "healthy" if is_valid else "failed",
            "details": asdict(self.get_connection_metrics()),
        }

    async def test_connection_stability(self) -> Dict[str, Any]:
        result = await self.health_check()
        if result["status"] == "healthy":
            return {"status": "stable", "message": "Connection stability test passed", "details": result}
        return {"status": "unstable", "message": "Connection stability test failed", "details": result}

    async def test_api_endpoints(self, subreddit: str = "all") -> Dict[str, Any]:
        """Fetch a single hot post to verify the listing endpoint responds."""
        try:
            await self.get_listing(subreddit, "hot", limit=1)
        except RedditAPIError as e:
            return {"status": "failed", "message": "API endpoints test failed", "details": str(e)}
        return {"status": "operational", "message": "API endpoints test passed"}

    def get_public_config(self) -> Dict[str, Any]:
        """Configuration summary with secrets left out."""
        return {
            "client_id": self.config.client_id,
            "username": self.config.username,
            "user_agent": self.config.user_agent,
            "api_base_url": self.config.api_base_url,
            "request_timeout_sec": self.config.request_timeout_sec,
            "rate_limit": asdict(self.config.rate_limit),
        }
