"""Tests for the paginated stream collector."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from reddit_collector.collector.stream import (
    CollectorState,
    PaginatedStreamCollector,
    StreamItem,
    StreamPage,
    page_from_listing,
)
from reddit_collector.exceptions import RateLimitError
from tests.http_fakes import listing_payload, post_child


def items(*specs):
    """Build StreamItems from (id, created_utc) pairs on thread t3_post1."""
    return [StreamItem(id=i, thread_id="t3_post1", created_utc=ts) for i, ts in specs]


class TestPaginatedStreamCollector(unittest.TestCase):
    """Test cases for the PaginatedStreamCollector class."""

    def setUp(self):
        """Set up test environment."""
        self.fetch_page = AsyncMock()
        self.mock_prometheus_exporter = MagicMock()
        self.collector = PaginatedStreamCollector(
            self.fetch_page,
            page_delay_sec=1.0,
            gap_threshold_sec=3600,
            prometheus_exporter=self.mock_prometheus_exporter,
        )
        self.sleep_patcher = patch("asyncio.sleep", new_callable=AsyncMock)
        self.mock_sleep = self.sleep_patcher.start()

    def tearDown(self):
        self.sleep_patcher.stop()

    def test_duplicates_suppressed(self):
        """Page 2 repeating three ids from page 1 counts three duplicates."""
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 1000), ("b", 999), ("c", 998), ("d", 997), ("e", 996)), after="p2"),
            StreamPage(items(("c", 998), ("d", 997), ("e", 996), ("f", 995)), after=None),
        ]

        result = asyncio.run(self.collector.collect(page_size=5, max_pages=10))

        self.assertEqual([i.id for i in result.items], ["a", "b", "c", "d", "e", "f"])
        self.assertEqual(result.metrics.duplicate_items, 3)
        self.assertEqual(result.limitations.duplicates_found, 3)
        self.assertEqual(result.final_state, CollectorState.DONE)
        self.assertFalse(result.metrics.gap_detected)
        self.assertEqual(result.performance.api_calls_used, 2)
        self.mock_prometheus_exporter.record_duplicates.assert_called_once_with(3)

        self.fetch_page.assert_any_await(None, 5)
        self.fetch_page.assert_any_await("p2", 5)
        self.mock_sleep.assert_awaited_once_with(1.0)

    def test_rate_limit_returns_partial_result(self):
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 1000), ("b", 999)), after="p2"),
            RateLimitError("Rate limited", retry_after=42),
        ]

        result = asyncio.run(self.collector.collect())

        self.assertEqual(result.final_state, CollectorState.RATE_LIMITED)
        self.assertEqual([i.id for i in result.items], ["a", "b"])
        self.assertEqual(result.limitations.retry_after, 42)
        self.assertTrue(result.performance.rate_limit_hit)
        self.assertEqual(result.next_cursor, "p2")

    def test_max_pages_exhausted(self):
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 1000)), after="p2"),
            StreamPage(items(("b", 999)), after="p3"),
        ]

        result = asyncio.run(self.collector.collect(max_pages=2))

        self.assertEqual(result.final_state, CollectorState.EXHAUSTED)
        self.assertTrue(result.limitations.max_pages_reached)
        self.assertEqual(result.next_cursor, "p3")
        self.assertEqual(self.fetch_page.await_count, 2)

    def test_page_without_new_items_is_a_gap(self):
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 1000), ("b", 999)), after="p2"),
            StreamPage(items(("a", 1000), ("b", 999)), after="p3"),
            StreamPage(items(("c", 998)), after=None),
        ]

        result = asyncio.run(self.collector.collect())

        self.assertTrue(result.metrics.gap_detected)
        self.assertEqual(len(result.limitations.gaps_detected), 1)
        self.assertEqual(result.metrics.duplicate_items, 2)

    def test_time_jump_between_pages_is_a_gap(self):
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 20000), ("b", 19000)), after="p2"),
            StreamPage(items(("c", 1000)), after=None),
        ]

        result = asyncio.run(self.collector.collect())

        self.assertTrue(result.metrics.gap_detected)
        self.assertIn("Time gap", result.limitations.gaps_detected[0])

    def test_metrics(self):
        self.fetch_page.side_effect = [
            StreamPage([
                StreamItem("a", "t3_x", 1000),
                StreamItem("b", "t3_x", 999),
                StreamItem("c", "t3_y", 998),
            ], after=None),
        ]

        result = asyncio.run(self.collector.collect())

        self.assertEqual(result.metrics.total_items_retrieved, 3)
        self.assertEqual(result.metrics.unique_threads_covered, 2)
        self.assertEqual(result.metrics.average_items_per_thread, 1.5)
        self.assertEqual(result.metrics.last_item_timestamp, 998)

    def test_step_transitions(self):
        """Each step applies exactly one transition."""
        self.fetch_page.side_effect = [
            StreamPage(items(("a", 1000)), after="p2"),
            StreamPage(items(("b", 999)), after=None),
        ]

        async def run():
            run = self.collector.start(page_size=10, max_pages=5)
            states = [run.state]
            while not run.finished:
                states.append(await self.collector.step(run))
            # Stepping a finished run is a no-op
            states.append(await self.collector.step(run))
            return states

        states = asyncio.run(run())

        self.assertEqual(states, [
            CollectorState.INIT,
            CollectorState.FETCHING_PAGE,
            CollectorState.FETCHING_PAGE,
            CollectorState.DONE,
            CollectorState.DONE,
        ])
        self.assertEqual(self.fetch_page.await_count, 2)

    def test_no_pause_after_last_fetched_page(self):
        """A caller that stops stepping after one page never waits on the page delay."""
        self.fetch_page.return_value = StreamPage(items(("a", 1000)), after="p2")

        async def run():
            run = self.collector.start(page_size=10, max_pages=5)
            await self.collector.step(run)
            await self.collector.step(run)
            return run

        run = asyncio.run(run())

        self.assertEqual(run.pages_retrieved, 1)
        self.assertFalse(run.finished)
        self.mock_sleep.assert_not_awaited()

    def test_start_validation(self):
        with self.assertRaises(ValueError):
            self.collector.start(max_pages=0)

        self.assertEqual(self.collector.start(page_size=500).page_size, 100)
        self.assertEqual(self.collector.start(page_size=0).page_size, 1)
        self.assertEqual(self.collector.start(start_cursor="t1_abc").cursor, "t1_abc")


class TestPageFromListing(unittest.TestCase):

    def test_post_listing(self):
        page = page_from_listing(listing_payload([post_child("p1", 1000), post_child("p2", 999)], after="t3_p2"))

        self.assertEqual([i.id for i in page.items], ["p1", "p2"])
        self.assertEqual(page.items[0].thread_id, "t3_p1")
        self.assertEqual(page.items[0].created_utc, 1000.0)
        self.assertEqual(page.after, "t3_p2")

    def test_comment_listing_uses_link_id(self):
        child = {"kind": "t1", "data": {"id": "c1", "link_id": "t3_p9", "created_utc": 5}}

        page = page_from_listing(listing_payload([child]))

        self.assertEqual(page.items[0].thread_id, "t3_p9")
        self.assertIsNone(page.after)

    def test_invalid_entries_dropped(self):
        payload = listing_payload([{"kind": "t3", "data": {"title": "no id"}}, "junk", post_child("p1", 1)])

        page = page_from_listing(payload)

        self.assertEqual([i.id for i in page.items], ["p1"])
        self.assertEqual(page_from_listing(None).items, [])


if __name__ == "__main__":
    unittest.main()
