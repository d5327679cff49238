"""Cursor-based streaming collection with duplicate and gap detection."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from reddit_collector.exceptions import RateLimitError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class StreamItem:
    """One listing entry (post or comment) flowing through the collector."""

    id: str
    thread_id: str
    created_utc: float
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamPage:
    """One page of a cursor-paginated listing."""

    items: List[StreamItem]
    after: Optional[str] = None
    before: Optional[str] = None


PageFetcher = Callable[[Optional[str], int], Awaitable[StreamPage]]


def page_from_listing(payload: Any) -> StreamPage:
    """
    Convert a Reddit ``Listing`` response into a StreamPage.

    Entries without an id are dropped. For comments the thread id is the
    ``link_id``; for posts it is the post's own fullname.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return StreamPage(items=[])

    items = []
    for child in data.get("children") or []:
        if not isinstance(child, dict) or not isinstance(child.get("data"), dict):
            continue
        entry = child["data"]
        item_id = entry.get("id")
        if not isinstance(item_id, str) or not item_id:
            continue
        if child.get("kind") == "t1":
            thread_id = entry.get("link_id") or ""
        else:
            thread_id = entry.get("name") or f"t3_{item_id}"
        created = entry.get("created_utc")
        items.append(StreamItem(
            id=item_id,
            thread_id=str(thread_id),
            created_utc=float(created) if isinstance(created, (int, float)) else 0.0,
            data=entry,
        ))

    return StreamPage(items=items, after=data.get("after"), before=data.get("before"))


class CollectorState(str, Enum):
    INIT = "init"
    FETCHING_PAGE = "fetching_page"
    DONE = "done"
    RATE_LIMITED = "rate_limited"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = frozenset({CollectorState.DONE, CollectorState.RATE_LIMITED, CollectorState.EXHAUSTED})


@dataclass
class StreamMetrics:
    total_items_retrieved: int = 0
    unique_threads_covered: int = 0
    average_items_per_thread: float = 0.0
    streaming_duration_ms: float = 0.0
    items_per_second: float = 0.0
    last_item_timestamp: float = 0.0
    gap_detected: bool = False
    duplicate_items: int = 0


@dataclass
class StreamPerformance:
    total_response_time_ms: float = 0.0
    api_calls_used: int = 0
    average_response_time_ms: float = 0.0
    rate_limit_hit: bool = False


@dataclass
class StreamLimitations:
    max_pages_reached: bool = False
    gaps_detected: List[str] = field(default_factory=list)
    duplicates_found: int = 0
    retry_after: Optional[float] = None


@dataclass
class StreamResult:
    items: List[StreamItem]
    metrics: StreamMetrics
    performance: StreamPerformance
    limitations: StreamLimitations
    final_state: CollectorState
    next_cursor: Optional[str] = None


@dataclass
class StreamRun:
    """Mutable state of one collection run, advanced by ``step()``."""

    page_size: int
    max_pages: int
    cursor: Optional[str] = None
    state: CollectorState = CollectorState.INIT
    pages_retrieved: int = 0
    items: List[StreamItem] = field(default_factory=list)
    seen_ids: Set[str] = field(default_factory=set)
    duplicates: int = 0
    gaps: List[str] = field(default_factory=list)
    response_times_ms: List[float] = field(default_factory=list)
    retry_after: Optional[float] = None
    previous_oldest: Optional[float] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class PaginatedStreamCollector:
    """
    Walks a cursor-paginated listing one page per step.

    State machine: INIT -> FETCHING_PAGE -> DONE | RATE_LIMITED | EXHAUSTED.
    ``max_pages`` bounds the loop; a throttled page ends the run with partial
    results instead of raising.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_delay_sec: float = 1.0,
        gap_threshold_sec: float = 3600,
        prometheus_exporter=None,
    ):
        """
        Initialize the collector.

        Args:
            fetch_page: Coroutine ``(cursor, limit) -> StreamPage``
            page_delay_sec: Fixed pause between successful page fetches
            gap_threshold_sec: Time jump between pages reported as a gap
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.fetch_page = fetch_page
        self.page_delay_sec = page_delay_sec
        self.gap_threshold_sec = gap_threshold_sec
        self.prometheus_exporter = prometheus_exporter

    def start(self, page_size: int = MAX_PAGE_SIZE, max_pages: int = 10,
              start_cursor: Optional[str] = None) -> StreamRun:
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        page_size = max(1, min(page_size, MAX_PAGE_SIZE))
        return StreamRun(page_size=page_size, max_pages=max_pages, cursor=start_cursor)

    async def step(self, run: StreamRun) -> CollectorState:
        """Apply exactly one state transition to ``run`` and return the new state."""
        if run.finished:
            return run.state

        if run.state is CollectorState.INIT:
            run.state = CollectorState.FETCHING_PAGE
            return run.state

        # Pause between pages runs before the next fetch, never after the last one
        if run.pages_retrieved > 0 and self.page_delay_sec > 0:
            await asyncio.sleep(self.page_delay_sec)

        fetch_start = time.monotonic()
        try:
            page = await self.fetch_page(run.cursor, run.page_size)
        except RateLimitError as e:
            run.retry_after = e.retry_after
            run.state = CollectorState.RATE_LIMITED
            logger.warning(f"Rate limit hit after {run.pages_retrieved} pages")
            return run.state
        run.response_times_ms.append((time.monotonic() - fetch_start) * 1000)
        run.pages_retrieved += 1

        self._absorb_page(run, page)
        run.cursor = page.after

        if not page.after:
            run.state = CollectorState.DONE
        elif run.pages_retrieved >= run.max_pages:
            run.state = CollectorState.EXHAUSTED
            logger.info(f"Stopping after max_pages={run.max_pages}, cursor {run.cursor} left unread")
        return run.state

    async def collect(self, page_size: int = MAX_PAGE_SIZE, max_pages: int = 10,
                      start_cursor: Optional[str] = None) -> StreamResult:
        """
        Run the state machine until it reaches a terminal state.

        Args:
            page_size: Items per request (clamped to 1..100)
            max_pages: Hard cap on the number of pages fetched
            start_cursor: Cursor to resume from

        Returns:
            StreamResult with deduplicated items and run statistics
        """
        logger.info(f"Streaming listing: page_size={page_size}, max_pages={max_pages}")
        run = self.start(page_size, max_pages, start_cursor)
        while not run.finished:
            await self.step(run)
        return self.build_result(run)

    def _absorb_page(self, run: StreamRun, page: StreamPage) -> None:
        new_items = 0
        for item in page.items:
            if item.id in run.seen_ids:
                run.duplicates += 1
                continue
            run.seen_ids.add(item.id)
            run.items.append(item)
            new_items += 1

        if new_items == 0 and page.after:
            run.gaps.append(
                f"Page {run.pages_retrieved} at cursor {run.cursor} yielded no new items"
            )

        timestamps = [i.created_utc for i in page.items if i.created_utc]
        if timestamps:
            newest, oldest = max(timestamps), min(timestamps)
            if run.previous_oldest is not None and run.previous_oldest - newest > self.gap_threshold_sec:
                run.gaps.append(
                    f"Time gap of {run.previous_oldest - newest:.0f}s before page {run.pages_retrieved}"
                )
            run.previous_oldest = oldest

    def build_result(self, run: StreamRun) -> StreamResult:
        duration_ms = (time.monotonic() - run.started_at) * 1000
        thread_ids = {i.thread_id for i in run.items}
        total = len(run.items)
        total_response = sum(run.response_times_ms)

        metrics = StreamMetrics(
            total_items_retrieved=total,
            unique_threads_covered=len(thread_ids),
            average_items_per_thread=total / len(thread_ids) if thread_ids else 0.0,
            streaming_duration_ms=duration_ms,
            items_per_second=total / (duration_ms / 1000) if duration_ms > 0 else 0.0,
            last_item_timestamp=run.items[-1].created_utc if run.items else 0.0,
            gap_detected=bool(run.gaps),
            duplicate_items=run.duplicates,
        )
        performance = StreamPerformance(
            total_response_time_ms=total_response,
            api_calls_used=run.pages_retrieved,
            average_response_time_ms=(
                total_response / len(run.response_times_ms) if run.response_times_ms else 0.0
            ),
            rate_limit_hit=run.state is CollectorState.RATE_LIMITED,
        )
        limitations = StreamLimitations(
            max_pages_reached=run.pages_retrieved >= run.max_pages,
            gaps_detected=list(run.gaps),
            duplicates_found=run.duplicates,
            retry_after=run.retry_after,
        )

        if self.prometheus_exporter:
            self.prometheus_exporter.record_duplicates(run.duplicates)

        logger.info(
            f"Stream finished in state {run.state.value}: {total} items, "
            f"{len(thread_ids)} threads, {run.duplicates} duplicates, {len(run.gaps)} gaps"
        )
        return StreamResult(
            items=run.items,
            metrics=metrics,
            performance=performance,
            limitations=limitations,
            final_state=run.state,
            next_cursor=run.cursor,
        )
