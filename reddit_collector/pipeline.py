"""Content retrieval pipeline: fetch threads by id and normalize them for the LLM stage."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reddit_collector.collector.stream import PaginatedStreamCollector, StreamResult
from reddit_collector.collector.window import CollectionWindow, CollectionWindowCalculator
from reddit_collector.config import Config
from reddit_collector.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ContentRetrievalError,
    RateLimitError,
)
from reddit_collector.models.mapping import Attribution, NormalizedThread, ThreadTransformer
from reddit_collector.models.normalized import NormalizedPost
from reddit_collector.models.thread import parse_thread_response
from reddit_collector.reddit_client import RedditAPIClient

logger = logging.getLogger(__name__)


@dataclass
class RetrievalOptions:
    """Per-call overrides for thread retrieval (config values are used when None)."""

    limit: Optional[int] = None
    sort: Optional[str] = None
    depth: Optional[int] = None
    delay_between_requests_sec: Optional[float] = None


@dataclass
class RetrievalMetadata:
    total_posts: int = 0
    total_comments: int = 0
    successful_retrievals: int = 0
    failed_retrievals: int = 0
    average_thread_depth: float = 0.0
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class RetrievalPerformance:
    total_response_time_ms: float = 0.0
    average_response_time_ms: float = 0.0
    api_calls_used: int = 0
    rate_limit_hits: int = 0


@dataclass
class RetrievalAttribution:
    source_urls: List[str] = field(default_factory=list)
    retrieval_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RetrievalResult:
    posts: List[NormalizedPost]
    metadata: RetrievalMetadata
    performance: RetrievalPerformance
    attribution: RetrievalAttribution
    window: Optional[CollectionWindow] = None
    stream: Optional[StreamResult] = None

    @property
    def failed_retrievals(self) -> int:
        return self.metadata.failed_retrievals

    def to_llm_input(self) -> Dict[str, Any]:
        """Payload shape consumed by the downstream model stage."""
        return {"posts": self.posts}


class ContentRetrievalOrchestrator:
    """
    Composes the client, transformer and window calculator into
    "give me these threads, normalized".

    Threads are fetched one after another so a batch stays within a single
    rate-limit quota. A failing id is logged and skipped; the batch only fails
    when nothing could be retrieved.
    """

    def __init__(
        self,
        client: RedditAPIClient,
        config: Optional[Config] = None,
        transformer: Optional[ThreadTransformer] = None,
        window_calculator: Optional[CollectionWindowCalculator] = None,
        prometheus_exporter=None,
    ):
        self.client = client
        self.config = config or client.config
        self.transformer = transformer or ThreadTransformer(self.config.retrieval.max_comment_depth)
        self.window_calculator = window_calculator or CollectionWindowCalculator(self.config.window)
        self.prometheus_exporter = prometheus_exporter

    async def fetch_thread(
        self,
        subreddit: str,
        post_id: str,
        options: Optional[RetrievalOptions] = None,
    ) -> NormalizedThread:
        """
        Fetch, parse and normalize one thread.

        Raises:
            RedditAPIError: If the request fails (including rate limiting)
            ContentValidationError: If the response is not a usable thread
        """
        options = options or RetrievalOptions()
        response = await self.client.get_thread(
            subreddit,
            post_id,
            limit=options.limit,
            sort=options.sort,
            depth=options.depth,
        )
        thread = parse_thread_response(response.data, self.config.retrieval.max_comment_depth)
        attribution = Attribution.from_thread(thread, self.config.permalink_base_url)
        return self.transformer.normalize_raw_thread(thread, attribution)

    async def retrieve_for_ids(
        self,
        subreddit: str,
        post_ids: List[str],
        options: Optional[RetrievalOptions] = None,
    ) -> RetrievalResult:
        """
        Retrieve and normalize threads for the given post ids.

        Args:
            subreddit: Subreddit the posts belong to
            post_ids: Post ids (base36, without ``t3_``), processed in order
            options: Optional retrieval overrides

        Returns:
            RetrievalResult with posts in input order, failed ids skipped

        Raises:
            ContentRetrievalError: If no id could be retrieved
            AuthenticationError: If the credentials are rejected
        """
        options = options or RetrievalOptions()
        delay = options.delay_between_requests_sec
        if delay is None:
            delay = self.config.retrieval.delay_between_requests_sec

        logger.info(f"Starting content retrieval for {len(post_ids)} posts from r/{subreddit}")
        start = time.monotonic()

        posts: List[NormalizedPost] = []
        source_urls: List[str] = []
        errors: Dict[str, str] = {}
        total_depth = 0
        rate_limit_hits = 0
        last_error: Optional[BaseException] = None

        for index, post_id in enumerate(post_ids):
            try:
                normalized = await self.fetch_thread(subreddit, post_id, options)
            except (AuthenticationError, ConfigurationError):
                raise
            except Exception as e:
                if isinstance(e, RateLimitError):
                    rate_limit_hits += 1
                errors[post_id] = str(e)
                last_error = e
                logger.error(f"Failed to retrieve post {post_id} from r/{subreddit}: {e}")
            else:
                post = normalized.post
                posts.append(post)
                total_depth += normalized.thread_depth
                source_urls.append(post["url"])
                source_urls.extend(c["url"] for c in post["comments"] if c["url"])

                if self.prometheus_exporter:
                    self.prometheus_exporter.record_thread_normalized(subreddit, len(post["comments"]))

            if delay > 0 and index < len(post_ids) - 1:
                await asyncio.sleep(delay)

        if not posts:
            logger.error(f"Content retrieval failed for every post in r/{subreddit}: {post_ids}")
            raise ContentRetrievalError(
                "No valid posts retrieved",
                subreddit=subreddit,
                post_ids=post_ids,
                cause=last_error,
                errors=errors,
            )

        elapsed_ms = (time.monotonic() - start) * 1000
        metadata = RetrievalMetadata(
            total_posts=len(post_ids),
            total_comments=sum(len(p["comments"]) for p in posts),
            successful_retrievals=len(posts),
            failed_retrievals=len(post_ids) - len(posts),
            average_thread_depth=total_depth / len(posts),
            errors=errors,
        )
        performance = RetrievalPerformance(
            total_response_time_ms=elapsed_ms,
            average_response_time_ms=elapsed_ms / len(post_ids),
            api_calls_used=len(post_ids),
            rate_limit_hits=rate_limit_hits,
        )

        logger.info(
            f"Retrieved {metadata.successful_retrievals}/{metadata.total_posts} posts "
            f"with {metadata.total_comments} comments from r/{subreddit}"
        )
        return RetrievalResult(
            posts=posts,
            metadata=metadata,
            performance=performance,
            attribution=RetrievalAttribution(source_urls=source_urls),
        )

    async def retrieve_single(
        self,
        subreddit: str,
        post_id: str,
        options: Optional[RetrievalOptions] = None,
    ) -> RetrievalResult:
        return await self.retrieve_for_ids(subreddit, [post_id], options)

    async def retrieve_recent(
        self,
        subreddit: str,
        target_items: Optional[int] = None,
        options: Optional[RetrievalOptions] = None,
        now: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Retrieve up to ``target_items`` recent threads inside the computed window.

        Walks ``/r/{subreddit}/new`` until enough in-window posts were seen, the
        listing runs past the window start, or the stream terminates.
        """
        target_items = target_items or self.config.window.target_items
        window = self.window_calculator.compute_window(subreddit, target_items, now=now)
        logger.info(f"Collecting recent threads from r/{subreddit}: {window.rationale}")

        stream_config = self.config.stream

        async def fetch_page(cursor, limit):
            return await self.client.get_listing(subreddit, "new", limit=limit, after=cursor)

        collector = PaginatedStreamCollector(
            fetch_page,
            page_delay_sec=stream_config.page_delay_sec,
            gap_threshold_sec=stream_config.gap_threshold_sec,
            prometheus_exporter=self.prometheus_exporter,
        )
        run = collector.start(stream_config.page_size, stream_config.max_pages)
        while not run.finished:
            await collector.step(run)
            in_window = [i for i in run.items if i.created_utc >= window.from_timestamp]
            if len(in_window) >= target_items:
                break
            if run.items and run.items[-1].created_utc < window.from_timestamp:
                break
        stream = collector.build_result(run)

        post_ids = [i.id for i in stream.items if i.created_utc >= window.from_timestamp][:target_items]
        if not post_ids:
            raise ContentRetrievalError(
                "No posts found inside the collection window",
                subreddit=subreddit,
                post_ids=[],
            )

        result = await self.retrieve_for_ids(subreddit, post_ids, options)
        result.window = window
        result.stream = stream
        return result
