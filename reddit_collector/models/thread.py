"""Typed representation of raw Reddit threads, validated once at the API boundary.

The thread endpoint returns ``[submissionListing, commentListing]`` where every
comment may carry a nested ``replies`` listing. This module turns that loosely
shaped JSON into ``RawThread``/``RawComment`` objects so the transformer never
touches untyped dictionaries.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from reddit_collector.exceptions import ContentValidationError

logger = logging.getLogger(__name__)

# Nesting levels beyond this are not parsed
DEFAULT_MAX_PARSE_DEPTH = 200


class ParentKind(str, Enum):
    """Kind prefix of a Reddit fullname used as a parent reference."""

    COMMENT = "t1"
    POST = "t3"


@dataclass(frozen=True)
class ParentRef:
    """Tagged reference to the parent of a comment."""

    kind: ParentKind
    id: str

    @property
    def fullname(self) -> str:
        return f"{self.kind.value}_{self.id}"

    @property
    def is_comment(self) -> bool:
        return self.kind is ParentKind.COMMENT

    @classmethod
    def parse(cls, value: Any) -> Optional["ParentRef"]:
        """
        Parse a ``t1_``/``t3_`` fullname.

        Args:
            value: Raw ``parent_id`` value

        Returns:
            ParentRef, or None when the value is absent or not a known kind
        """
        if not isinstance(value, str):
            return None
        value = value.strip()
        prefix, sep, ident = value.partition("_")
        if not sep or not ident:
            return None
        try:
            kind = ParentKind(prefix)
        except ValueError:
            return None
        return cls(kind=kind, id=ident)


@dataclass
class RawSubmission:
    """Root post of a thread as delivered by the API."""

    id: str
    title: str
    body: Optional[str]
    author: str
    subreddit: str
    score: Any
    created_utc: Any
    permalink: str


@dataclass
class RawComment:
    """A comment and its ordered replies."""

    id: Optional[str]
    body: Optional[str]
    author: str
    score: Any = 0
    created_utc: Any = None
    parent: Optional[ParentRef] = None
    permalink: str = ""
    children: List["RawComment"] = field(default_factory=list)


@dataclass
class RawThread:
    """A root submission plus its comment forest."""

    submission: Optional[RawSubmission]
    comments: List[RawComment] = field(default_factory=list)
    # (comment id, permalink) pairs in document order
    permalinks: List[Tuple[str, str]] = field(default_factory=list)


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _listing_children(listing: Any) -> List[Dict[str, Any]]:
    if not isinstance(listing, dict):
        return []
    data = listing.get("data")
    if not isinstance(data, dict):
        return []
    children = data.get("children")
    if not isinstance(children, list):
        return []
    return [c for c in children if isinstance(c, dict) and isinstance(c.get("data"), dict)]


def parse_submission(data: Dict[str, Any]) -> RawSubmission:
    """
    Build a RawSubmission from a ``t3`` data object.

    Raises:
        ContentValidationError: If the submission has no id
    """
    post_id = _str_or_none(data.get("id"))
    if not post_id:
        raise ContentValidationError("Submission has no id", {"keys": sorted(data)})

    return RawSubmission(
        id=post_id,
        title=_str_or_none(data.get("title")) or "",
        body=_str_or_none(data.get("selftext")) or None,
        author=_str_or_none(data.get("author")) or "",
        subreddit=_str_or_none(data.get("subreddit")) or "",
        score=data.get("score"),
        created_utc=data.get("created_utc"),
        permalink=_str_or_none(data.get("permalink")) or "",
    )


def parse_comment(
    child: Dict[str, Any],
    permalinks: List[Tuple[str, str]],
    depth: int = 0,
    max_depth: int = DEFAULT_MAX_PARSE_DEPTH,
) -> Optional[RawComment]:
    """
    Build a RawComment (and its replies) from a listing child.

    ``more`` stubs and non-comment kinds yield None. Malformed comments are kept
    with missing fields so the transformer can decide what to skip.
    """
    kind = child.get("kind")
    if kind != "t1":
        return None

    data = child["data"]
    comment_id = _str_or_none(data.get("id"))
    permalink = _str_or_none(data.get("permalink")) or ""
    if comment_id and permalink:
        permalinks.append((comment_id, permalink))

    children: List[RawComment] = []
    replies = data.get("replies")
    if depth < max_depth:
        for reply in _listing_children(replies):
            parsed = parse_comment(reply, permalinks, depth + 1, max_depth)
            if parsed is not None:
                children.append(parsed)
    elif _listing_children(replies):
        logger.warning(f"Comment {comment_id} nested beyond {max_depth} levels; replies dropped")

    return RawComment(
        id=comment_id,
        body=_str_or_none(data.get("body")),
        author=_str_or_none(data.get("author")) or "",
        score=data.get("score"),
        created_utc=data.get("created_utc"),
        parent=ParentRef.parse(data.get("parent_id")),
        permalink=permalink,
        children=children,
    )


def parse_thread_response(payload: Any, max_depth: int = DEFAULT_MAX_PARSE_DEPTH) -> RawThread:
    """
    Validate a ``/r/{sub}/comments/{id}`` response.

    Args:
        payload: Decoded JSON, expected to be ``[submissionListing, commentListing]``
        max_depth: Maximum reply nesting to parse

    Returns:
        RawThread with a submission and its comment forest

    Raises:
        ContentValidationError: If the payload is not a two-element listing array
            or carries no submission
    """
    if not isinstance(payload, list) or len(payload) < 2:
        raise ContentValidationError(
            "Invalid response format for thread retrieval",
            {"type": type(payload).__name__},
        )

    posts = [c for c in _listing_children(payload[0]) if c.get("kind") in (None, "t3")]
    if not posts:
        raise ContentValidationError("Thread response contains no submission")

    submission = parse_submission(posts[0]["data"])

    permalinks: List[Tuple[str, str]] = []
    comments: List[RawComment] = []
    for child in _listing_children(payload[1]):
        parsed = parse_comment(child, permalinks, 0, max_depth)
        if parsed is not None:
            comments.append(parsed)

    return RawThread(submission=submission, comments=comments, permalinks=permalinks)
