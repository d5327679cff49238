"""Tests for thread normalization."""

import unittest

from reddit_collector.exceptions import ContentValidationError
from reddit_collector.models.mapping import (
    Attribution,
    ThreadTransformer,
    clamp_score,
    flattened_thread_depth,
    format_timestamp,
)
from reddit_collector.models.thread import ParentRef, RawComment, RawSubmission, parse_thread_response
from tests.http_fakes import comment_child, thread_payload

POST_URL = "https://reddit.com/r/austinfood/comments/post1/best_tacos/"


def make_submission(**overrides):
    fields = dict(
        id="post1",
        title="Best tacos?",
        body="Looking for tacos",
        author="poster",
        subreddit="austinfood",
        score=42,
        created_utc=1700000000,
        permalink="/r/austinfood/comments/post1/best_tacos/",
    )
    fields.update(overrides)
    return RawSubmission(**fields)


def make_comment(comment_id, parent="t3_post1", children=None, body="text", author="someone", score=1):
    return RawComment(
        id=comment_id,
        body=body,
        author=author,
        score=score,
        created_utc=1700000000,
        parent=ParentRef.parse(parent),
        children=children or [],
    )


class TestThreadTransformer(unittest.TestCase):
    """Test cases for the ThreadTransformer class."""

    def setUp(self):
        self.transformer = ThreadTransformer()
        self.attribution = Attribution(post_url=POST_URL)

    def test_worked_example(self):
        """c1 with a single reply c2 flattens to two comments and depth 1."""
        comments = [make_comment("c1", children=[make_comment("c2", parent="t1_c1")])]

        result = self.transformer.normalize_thread(make_submission(), comments, self.attribution)

        flattened = [(c["id"], c["parent_id"]) for c in result.post["comments"]]
        self.assertEqual(flattened, [("c1", None), ("c2", "t1_c1")])
        self.assertEqual(result.thread_depth, 1)

    def test_post_fields(self):
        post = self.transformer.normalize(make_submission(), [], self.attribution)

        self.assertEqual(post["id"], "post1")
        self.assertEqual(post["title"], "Best tacos?")
        self.assertEqual(post["content"], "Looking for tacos")
        self.assertEqual(post["subreddit"], "austinfood")
        self.assertEqual(post["author"], "poster")
        self.assertEqual(post["url"], POST_URL)
        self.assertEqual(post["score"], 42)
        self.assertEqual(post["created_at"], "2023-11-14T22:13:20+00:00")
        self.assertEqual(post["comments"], [])

    def test_content_falls_back_to_title(self):
        post = self.transformer.normalize(make_submission(body=None), [], self.attribution)

        self.assertEqual(post["content"], "Best tacos?")

    def test_idempotent(self):
        comments = [make_comment("c1", children=[make_comment("c2", parent="t1_c1")]), make_comment("c3")]
        submission = make_submission()

        first = self.transformer.normalize(submission, comments, self.attribution)
        second = self.transformer.normalize(submission, comments, self.attribution)

        self.assertEqual(first, second)

    def test_score_clamped(self):
        comments = [make_comment("c1", score=-5), make_comment("c2", score=None), make_comment("c3", score=7)]

        post = self.transformer.normalize(make_submission(score=-3), comments, self.attribution)

        self.assertEqual(post["score"], 0)
        self.assertEqual([c["score"] for c in post["comments"]], [0, 0, 7])

    def test_sibling_order_preserved(self):
        comments = [
            make_comment("a", children=[make_comment("a1", "t1_a"), make_comment("a2", "t1_a")]),
            make_comment("b"),
            make_comment("c"),
        ]

        post = self.transformer.normalize(make_submission(), comments, self.attribution)

        self.assertEqual([c["id"] for c in post["comments"]], ["a", "a1", "a2", "b", "c"])

    def test_tombstoned_comment_dropped_but_replies_kept(self):
        comments = [
            make_comment("c1", body="[deleted]", children=[make_comment("c2", parent="t1_c1")]),
            make_comment("c3", body="[removed]"),
            make_comment("c4", author="[deleted]"),
        ]

        result = self.transformer.normalize_thread(make_submission(), comments, self.attribution)

        self.assertEqual(
            [(c["id"], c["parent_id"]) for c in result.post["comments"]],
            [("c2", "t1_c1")],
        )
        self.assertEqual(result.tombstoned_comments, 3)

    def test_depth_bound(self):
        flat = [make_comment("a"), make_comment("b")]
        chain = [make_comment("a", children=[
            make_comment("b", "t1_a", children=[make_comment("c", "t1_b", children=[make_comment("d", "t1_c")])]),
        ])]

        self.assertEqual(self.transformer.normalize_thread(make_submission(), flat, self.attribution).thread_depth, 0)
        self.assertEqual(self.transformer.normalize_thread(make_submission(), chain, self.attribution).thread_depth, 3)
        self.assertEqual(self.transformer.normalize_thread(make_submission(), [], self.attribution).thread_depth, 0)

    def test_malformed_comments_skipped(self):
        comments = [
            make_comment(None, children=[make_comment("child", parent="t1_gone")]),
            make_comment("blank", body="   "),
            make_comment("ok"),
        ]

        result = self.transformer.normalize_thread(make_submission(), comments, self.attribution)

        self.assertEqual([c["id"] for c in result.post["comments"]], ["child", "ok"])
        self.assertEqual(result.skipped_comments, 2)

    def test_missing_author_becomes_unknown(self):
        post = self.transformer.normalize(make_submission(author=""), [make_comment("c1", author="")],
                                          self.attribution)

        self.assertEqual(post["author"], "unknown")
        self.assertEqual(post["comments"][0]["author"], "unknown")

    def test_missing_submission(self):
        with self.assertRaises(ContentValidationError):
            self.transformer.normalize_thread(None, [make_comment("c1")], self.attribution)

    def test_max_depth_guard(self):
        transformer = ThreadTransformer(max_depth=1)
        chain = [make_comment("a", children=[
            make_comment("b", "t1_a", children=[make_comment("c", "t1_b")]),
        ])]

        result = transformer.normalize_thread(make_submission(), chain, self.attribution)

        self.assertEqual([c["id"] for c in result.post["comments"]], ["a", "b"])
        self.assertEqual(result.thread_depth, 1)

    def test_cycle_guard(self):
        looped = make_comment("a")
        looped.children.append(looped)

        result = self.transformer.normalize_thread(make_submission(), [looped], self.attribution)

        self.assertEqual([c["id"] for c in result.post["comments"]], ["a"])

    def test_urls_from_parsed_thread(self):
        payload = thread_payload(comments=[comment_child("c1", replies=[comment_child("c2", parent_id="t1_c1")])])
        thread = parse_thread_response(payload)
        attribution = Attribution.from_thread(thread, "https://reddit.com")

        result = self.transformer.normalize_raw_thread(thread, attribution)

        self.assertEqual(result.post["url"], POST_URL)
        self.assertEqual(
            [c["url"] for c in result.post["comments"]],
            [
                "https://reddit.com/r/austinfood/comments/post1/_/c1/",
                "https://reddit.com/r/austinfood/comments/post1/_/c2/",
            ],
        )


class TestHelpers(unittest.TestCase):

    def test_format_timestamp(self):
        self.assertEqual(format_timestamp(1700000000), "2023-11-14T22:13:20+00:00")
        self.assertEqual(format_timestamp(1700000000000), "2023-11-14T22:13:20+00:00")
        self.assertEqual(format_timestamp("1700000000"), "2023-11-14T22:13:20+00:00")
        self.assertEqual(format_timestamp(None), "1970-01-01T00:00:00+00:00")
        self.assertEqual(format_timestamp(float("nan")), "1970-01-01T00:00:00+00:00")
        self.assertEqual(format_timestamp("yesterday"), "1970-01-01T00:00:00+00:00")

    def test_clamp_score(self):
        self.assertEqual(clamp_score(10), 10)
        self.assertEqual(clamp_score(-1), 0)
        self.assertEqual(clamp_score(None), 0)
        self.assertEqual(clamp_score(True), 0)
        self.assertEqual(clamp_score(float("inf")), 0)

    def test_attribution_keeps_absolute_links(self):
        thread = parse_thread_response(thread_payload())
        thread.submission.permalink = "https://old.reddit.com/r/austinfood/comments/post1/"

        attribution = Attribution.from_thread(thread)

        self.assertEqual(attribution.post_url, "https://old.reddit.com/r/austinfood/comments/post1/")


class TestFlattenedThreadDepth(unittest.TestCase):

    def comment(self, comment_id, parent_id=None):
        return {"id": comment_id, "content": "x", "author": "a", "score": 0,
                "created_at": "", "parent_id": parent_id, "url": ""}

    def test_chain(self):
        comments = [self.comment("a"), self.comment("b", "t1_a"), self.comment("c", "t1_b"), self.comment("d")]

        self.assertEqual(flattened_thread_depth(comments), 2)

    def test_empty(self):
        self.assertEqual(flattened_thread_depth([]), 0)

    def test_dangling_parent_counts_as_top_level(self):
        comments = [self.comment("a", "t1_missing"), self.comment("b", "t1_a")]

        self.assertEqual(flattened_thread_depth(comments), 1)

    def test_cycle_terminates(self):
        comments = [self.comment("a", "t1_b"), self.comment("b", "t1_a")]

        self.assertEqual(flattened_thread_depth(comments), 1)


if __name__ == "__main__":
    unittest.main()
