"""Mapping functions to convert raw Reddit threads to normalized records."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from reddit_collector.exceptions import ContentValidationError
from reddit_collector.models.normalized import NormalizedComment, NormalizedPost
from reddit_collector.models.thread import RawComment, RawSubmission, RawThread

logger = logging.getLogger(__name__)

TOMBSTONE_BODIES = frozenset({"[deleted]", "[removed]"})
DELETED_AUTHOR = "[deleted]"
UNKNOWN_AUTHOR = "unknown"
DEFAULT_MAX_DEPTH = 200

# Values above this are treated as epoch milliseconds
_MILLISECOND_THRESHOLD = 10_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Attribution:
    """Source URLs for a thread: the post URL and per-comment permalinks."""

    post_url: str
    comment_permalinks: Sequence[Tuple[str, str]] = field(default_factory=list)

    @classmethod
    def from_thread(
        cls,
        thread: RawThread,
        base_url: str = "https://reddit.com",
        post_url: Optional[str] = None,
    ) -> "Attribution":
        """
        Build attribution from the permalinks collected while parsing a thread.

        Args:
            thread: Parsed thread
            base_url: Host prefix for relative permalinks
            post_url: Explicit post URL (derived from the submission when omitted)
        """
        base_url = base_url.rstrip("/")

        def absolute(link: str) -> str:
            if link.startswith("http://") or link.startswith("https://"):
                return link
            return f"{base_url}{link}"

        if post_url is None:
            submission = thread.submission
            if submission is not None and submission.permalink:
                post_url = absolute(submission.permalink)
            elif submission is not None:
                post_url = f"{base_url}/r/{submission.subreddit}/comments/{submission.id}"
            else:
                post_url = ""

        return cls(
            post_url=post_url,
            comment_permalinks=[(cid, absolute(link)) for cid, link in thread.permalinks],
        )


@dataclass
class NormalizedThread:
    """A normalized post plus statistics gathered during the walk."""

    post: NormalizedPost
    thread_depth: int
    skipped_comments: int = 0
    tombstoned_comments: int = 0


def format_timestamp(value: Any) -> str:
    """
    Render an epoch timestamp as ISO-8601 UTC.

    Seconds and milliseconds are both accepted. Missing or invalid values map to
    the Unix epoch so the same input always yields the same output.
    """
    if isinstance(value, datetime):
        stamp = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return stamp.astimezone(timezone.utc).isoformat()

    if isinstance(value, bool):
        return _EPOCH.isoformat()

    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return _EPOCH.isoformat()

    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return _EPOCH.isoformat()

    seconds = value / 1000 if value > _MILLISECOND_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return _EPOCH.isoformat()


def clamp_score(value: Any) -> int:
    """Return ``max(0, value)`` for finite numbers, 0 for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, int(value))


def is_tombstoned(comment: RawComment) -> bool:
    """True when the comment was deleted or removed upstream."""
    return comment.body in TOMBSTONE_BODIES or comment.author == DELETED_AUTHOR


def submission_to_record(submission: RawSubmission, post_url: str) -> NormalizedPost:
    """
    Convert a RawSubmission to a NormalizedPost without comments.

    Args:
        submission: Parsed root post
        post_url: Attribution URL of the post

    Returns:
        A NormalizedPost TypedDict with an empty comment list
    """
    title = submission.title or ""
    record: NormalizedPost = {
        "id": submission.id,
        "title": title,
        "content": submission.body if submission.body else title,
        "subreddit": submission.subreddit or "",
        "author": submission.author or UNKNOWN_AUTHOR,
        "url": post_url,
        "score": clamp_score(submission.score),
        "created_at": format_timestamp(submission.created_utc),
        "comments": [],
    }
    return record


def comment_to_record(comment: RawComment, url: str) -> NormalizedComment:
    parent_id = comment.parent.fullname if comment.parent and comment.parent.is_comment else None
    record: NormalizedComment = {
        "id": comment.id,
        "content": comment.body,
        "author": comment.author or UNKNOWN_AUTHOR,
        "score": clamp_score(comment.score),
        "created_at": format_timestamp(comment.created_utc),
        "parent_id": parent_id,
        "url": url,
    }
    return record


class ThreadTransformer:
    """Flattens a submission and its nested comment forest into a NormalizedPost."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        """
        Args:
            max_depth: Deepest nesting level that is still walked
        """
        self.max_depth = max_depth

    def normalize(
        self,
        submission: Optional[RawSubmission],
        comments: Sequence[RawComment],
        attribution: Attribution,
    ) -> NormalizedPost:
        return self.normalize_thread(submission, comments, attribution).post

    def normalize_raw_thread(self, thread: RawThread, attribution: Attribution) -> NormalizedThread:
        return self.normalize_thread(thread.submission, thread.comments, attribution)

    def normalize_thread(
        self,
        submission: Optional[RawSubmission],
        comments: Sequence[RawComment],
        attribution: Attribution,
    ) -> NormalizedThread:
        """
        Normalize one thread.

        Comments are emitted in depth-first pre-order. Deleted or removed comments
        are dropped but their replies are still visited, and each kept reply
        keeps its original parent reference.

        Args:
            submission: Root post (required)
            comments: Top-level comments, each carrying nested children
            attribution: Post URL and comment permalinks

        Returns:
            NormalizedThread with the post and the maximum nesting depth

        Raises:
            ContentValidationError: If the submission is missing
        """
        if submission is None or not submission.id:
            raise ContentValidationError(
                "Thread has no submission root",
                {"post_url": attribution.post_url},
            )

        # Built once per call
        url_index: Dict[str, str] = dict(attribution.comment_permalinks)

        post = submission_to_record(submission, attribution.post_url)
        flattened: List[NormalizedComment] = []
        skipped = 0
        tombstoned = 0
        thread_depth = 0
        depth_capped = False
        visited: Set[int] = set()

        # (node, depth) pairs; popped in pre-order
        stack: List[Tuple[RawComment, int]] = [(c, 0) for c in reversed(comments)]
        while stack:
            node, depth = stack.pop()
            if id(node) in visited:
                logger.warning(f"Cycle detected at comment {node.id} in post {submission.id}")
                continue
            visited.add(id(node))

            if depth > self.max_depth:
                depth_capped = True
                continue
            thread_depth = max(thread_depth, depth)

            for child in reversed(node.children):
                stack.append((child, depth + 1))

            if not node.id or node.body is None or not node.body.strip():
                skipped += 1
                logger.warning(
                    f"Skipping malformed comment (id={node.id!r}) in post {submission.id}"
                )
                continue

            if is_tombstoned(node):
                tombstoned += 1
                continue

            flattened.append(comment_to_record(node, url_index.get(node.id, "")))

        if depth_capped:
            logger.warning(
                f"Post {submission.id} has comments nested beyond {self.max_depth} levels; truncated"
            )

        post["comments"] = flattened
        return NormalizedThread(
            post=post,
            thread_depth=thread_depth,
            skipped_comments=skipped,
            tombstoned_comments=tombstoned,
        )


def flattened_thread_depth(comments: Sequence[NormalizedComment]) -> int:
    """
    Reconstruct the maximum nesting depth from flat parent pointers.

    Parent pointers carry no acyclicity guarantee, so every chain walk keeps a
    visited set. A parent that is not among ``comments`` ends the chain, i.e.
    the comment counts as top-level.
    """
    parents: Dict[str, Optional[str]] = {}
    for comment in comments:
        parent = comment.get("parent_id")
        parents[comment["id"]] = parent[3:] if parent and parent.startswith("t1_") else None

    memo: Dict[str, int] = {}
    for comment_id in parents:
        path: List[str] = []
        seen: Set[str] = set()
        current = comment_id
        while True:
            if current in memo:
                base = memo[current]
                break
            if current in seen:
                logger.warning(f"Parent cycle detected at comment {current}")
                base = -1
                break
            seen.add(current)
            path.append(current)
            parent = parents.get(current)
            if parent is None or parent not in parents:
                base = -1
                break
            current = parent

        for node in reversed(path):
            base += 1
            memo[node] = base

    return max(memo.values(), default=0)
