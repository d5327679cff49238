"""Output records handed to the downstream language-model stage."""

from typing import List, Optional, TypedDict


class NormalizedComment(TypedDict):
    """
    TypedDict for one flattened comment.

    ``parent_id`` is None for top-level comments and the parent's fullname
    (``t1_<id>``) for replies, even when that parent was dropped as deleted.
    """
    id: str  # Reddit base36 id, e.g. "h3k2l9x"
    content: str  # Comment body
    author: str  # Username
    score: int  # Clamped to >= 0
    created_at: str  # ISO-8601 UTC
    parent_id: Optional[str]  # "t1_<id>" or None for top-level
    url: str  # Permalink URL, "" when unknown


class NormalizedPost(TypedDict):
    """TypedDict for a thread's root post with its flattened comments."""
    id: str  # Reddit base36 id of the submission
    title: str  # Submission title
    content: str  # Self-text, or the title when there is none
    subreddit: str  # Subreddit name as reported by the API
    author: str  # Username, "unknown" when missing
    url: str  # Permalink URL of the submission
    score: int  # Clamped to >= 0
    created_at: str  # ISO-8601 UTC
    comments: List[NormalizedComment]  # Depth-first order, siblings in original order
