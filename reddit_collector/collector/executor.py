"""Authenticated, rate-limit-aware execution of Reddit API requests."""

import asyncio
import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import aiohttp

from reddit_collector.collector.rate_limiter import RateLimiter, parse_retry_after
from reddit_collector.collector.token_manager import TokenLifecycleManager
from reddit_collector.config import Config
from reddit_collector.exceptions import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    RedditAPIError,
)
from reddit_collector.monitoring.performance import ConnectionMetrics, CostMetrics, PerformanceMetrics

logger = logging.getLogger(__name__)


@dataclass
class APIResponse:
    """A decoded API response."""

    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0


class RateLimitAwareExecutor:
    """
    Wraps every outbound Reddit API call.

    Attaches the bearer token and User-Agent, paces requests, classifies
    throttling and network failures into typed errors, and keeps the timing and
    connection-health counters. Throttled requests are never retried here.
    """

    def __init__(
        self,
        config: Config,
        session: aiohttp.ClientSession,
        token_manager: TokenLifecycleManager,
        rate_limiter: Optional[RateLimiter] = None,
        prometheus_exporter=None,
    ):
        """
        Initialize the executor.

        Args:
            config: Application configuration
            session: Shared HTTP session
            token_manager: Source of valid access tokens
            rate_limiter: Optional request pacer (built from config when omitted)
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.config = config
        self.session = session
        self.token_manager = token_manager
        self.rate_limiter = rate_limiter or RateLimiter(config.rate_limit)
        self.prometheus_exporter = prometheus_exporter
        self.performance = PerformanceMetrics()
        self.connection = ConnectionMetrics()
        self.cost = CostMetrics()
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_sec)

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self.performance.copy()

    def get_connection_metrics(self) -> ConnectionMetrics:
        return self.connection.copy()

    def get_cost_metrics(self) -> CostMetrics:
        return self.cost.copy()

    def reset_performance_metrics(self) -> None:
        self.performance = PerformanceMetrics()

    async def execute(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> APIResponse:
        """
        Send one authenticated request.

        Args:
            method: HTTP method (GET, POST)
            url: Absolute request URL
            params: Query parameters
            data: Form body for POST requests

        Returns:
            APIResponse with the decoded JSON body

        Raises:
            RateLimitError: On HTTP 429 (retry_after parsed, default 60s)
            AuthenticationError: On HTTP 401 or a failed token exchange
            NetworkError: When the API cannot be reached or the request times out
            RedditAPIError: On any other non-2xx response or an undecodable body
        """
        await self.rate_limiter.pre_request()

        if self.prometheus_exporter:
            self.prometheus_exporter.record_request(method)
            timer = self.prometheus_exporter.time_request()
        else:
            timer = None

        start = time.perf_counter()
        success = False
        try:
            token = await self.token_manager.ensure_valid_token()
            headers = {
                "Authorization": f"Bearer {token.value}",
                "User-Agent": self.config.user_agent,
            }

            try:
                with timer if timer else nullcontext():
                    async with self.session.request(
                        method,
                        url,
                        params=params,
                        data=data,
                        headers=headers,
                        timeout=self._timeout,
                    ) as response:
                        status = response.status
                        response_headers = dict(response.headers)
                        if 200 <= status < 300:
                            payload = await response.json(content_type=None)
                            body = None
                        else:
                            payload = None
                            body = await response.text()
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                self._record_error("network")
                logger.warning(f"Network error during {method} {url}: {e!r}")
                raise NetworkError("Network error during API request", e) from e
            except aiohttp.ClientError as e:
                self._record_error("client")
                logger.warning(f"HTTP client error during {method} {url}: {e!r}")
                raise NetworkError("HTTP client error during API request", e) from e
            except ValueError as e:
                self._record_error("decode")
                raise RedditAPIError(f"Invalid JSON in response from {url}") from e

            self.rate_limiter.update_from_headers(response_headers)

            if status == 429:
                retry_after = parse_retry_after(
                    response_headers.get("Retry-After") or response_headers.get("retry-after"),
                    self.config.rate_limit.default_retry_after_sec,
                )
                self.performance.record_rate_limit_hit()
                self._record_error("429")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_rate_limit_hit()
                logger.warning(
                    f"Rate limited by Reddit API on {url} "
                    f"(hits: {self.performance.rate_limit_hits}, retry after {retry_after:g}s)"
                )
                raise RateLimitError("Rate limited by Reddit API", retry_after=retry_after)

            if status == 401:
                self.token_manager.invalidate()
                self._record_error("auth")
                logger.error(f"Access token rejected on {url}")
                raise AuthenticationError("Access token rejected", status=status, body=body)

            if status >= 400:
                self._record_error("5xx" if status >= 500 else str(status))
                logger.warning(f"API request failed: {method} {url} -> HTTP {status}")
                raise RedditAPIError("API request failed", status=status, body=body)

            success = True
            elapsed_ms = (time.perf_counter() - start) * 1000
            return APIResponse(
                status=status,
                data=payload,
                headers=response_headers,
                elapsed_ms=elapsed_ms,
            )
        finally:
            self.performance.record((time.perf_counter() - start) * 1000)
            self.connection.record(success, self.performance.average_response_time_ms)
            self.cost.record()

    def _record_error(self, error_type: str) -> None:
        if self.prometheus_exporter:
            self.prometheus_exporter.record_api_error(error_type)
