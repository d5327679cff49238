"""Prometheus metrics for monitoring the Reddit content collector."""

import logging
import time
from typing import Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
API_REQUESTS = Counter(
    "reddit_collector_api_requests_total",
    "Number of API requests sent",
    ["method"],
)

API_ERRORS = Counter(
    "reddit_collector_api_errors_total",
    "Number of API errors encountered",
    ["error_type"],
)

RATE_LIMIT_HITS = Counter(
    "reddit_collector_rate_limit_hits_total",
    "Number of throttled (429) responses",
)

THREADS_NORMALIZED = Counter(
    "reddit_collector_threads_normalized_total",
    "Number of threads normalized for downstream processing",
    ["subreddit"],
)

COMMENTS_NORMALIZED = Counter(
    "reddit_collector_comments_normalized_total",
    "Number of comments emitted in normalized threads",
    ["subreddit"],
)

DUPLICATE_ITEMS = Counter(
    "reddit_collector_stream_duplicates_total",
    "Number of duplicate items dropped while streaming",
)

REQUEST_DURATION = Histogram(
    "reddit_collector_request_duration_seconds",
    "Duration of API requests in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the Reddit content collector."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except OSError as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_request(self, method: str) -> None:
        API_REQUESTS.labels(method=method).inc()

    def record_api_error(self, error_type: str) -> None:
        """
        Record an API error.

        Args:
            error_type: Type of API error (e.g., '5xx', '429', 'network', 'auth')
        """
        API_ERRORS.labels(error_type=error_type).inc()

    def record_rate_limit_hit(self) -> None:
        RATE_LIMIT_HITS.inc()

    def record_thread_normalized(self, subreddit: str, comment_count: int) -> None:
        """
        Record a normalized thread and its comment count.

        Args:
            subreddit: Subreddit the thread belongs to
            comment_count: Number of comments kept in the normalized thread
        """
        THREADS_NORMALIZED.labels(subreddit=subreddit).inc()
        COMMENTS_NORMALIZED.labels(subreddit=subreddit).inc(comment_count)

    def record_duplicates(self, count: int) -> None:
        if count:
            DUPLICATE_ITEMS.inc(count)

    def time_request(self) -> "RequestTimer":
        """
        Create a context manager for timing API requests.

        Returns:
            RequestTimer context manager
        """
        return RequestTimer()


class RequestTimer:
    """Context manager for timing API requests."""

    def __init__(self):
        self.start_time: Optional[float] = None

    def __enter__(self) -> "RequestTimer":
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            REQUEST_DURATION.observe(time.time() - self.start_time)
