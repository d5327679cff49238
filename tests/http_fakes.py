"""Minimal stand-ins for aiohttp responses and Reddit payloads used across tests."""

from typing import Any, Dict, List, Optional


class FakeResponse:
    """Async context manager mimicking ``aiohttp.ClientResponse``."""

    def __init__(self, status: int = 200, payload: Any = None,
                 headers: Optional[Dict[str, str]] = None, text: str = "",
                 json_error: Optional[Exception] = None):
        self.status = status
        self.payload = payload
        self.headers = headers or {}
        self._text = text
        self.json_error = json_error

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if self.json_error is not None:
            raise self.json_error
        return self.payload

    async def text(self):
        return self._text


def token_response(access_token: str = "token-123", expires_in: int = 3600) -> FakeResponse:
    return FakeResponse(200, {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": expires_in,
        "scope": "*",
    })


def comment_child(comment_id: Optional[str], body: Optional[str] = "text", parent_id: str = "t3_post1",
                  replies: Optional[List[Dict[str, Any]]] = None, author: Optional[str] = "someone",
                  score: Any = 1, created_utc: Any = 1700000000) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": comment_id,
        "body": body,
        "author": author,
        "score": score,
        "created_utc": created_utc,
        "parent_id": parent_id,
        "permalink": f"/r/austinfood/comments/post1/_/{comment_id}/",
        "replies": "",
    }
    if replies:
        data["replies"] = {"kind": "Listing", "data": {"children": replies}}
    return {"kind": "t1", "data": data}


def thread_payload(post_id: str = "post1", comments: Optional[List[Dict[str, Any]]] = None,
                   title: str = "Best tacos?", selftext: str = "Looking for tacos") -> List[Dict[str, Any]]:
    submission = {
        "kind": "t3",
        "data": {
            "id": post_id,
            "name": f"t3_{post_id}",
            "title": title,
            "selftext": selftext,
            "author": "poster",
            "subreddit": "austinfood",
            "score": 42,
            "created_utc": 1700000000,
            "permalink": f"/r/austinfood/comments/{post_id}/best_tacos/",
        },
    }
    return [
        {"kind": "Listing", "data": {"children": [submission]}},
        {"kind": "Listing", "data": {"children": comments or []}},
    ]


def listing_payload(children: List[Dict[str, Any]], after: Optional[str] = None) -> Dict[str, Any]:
    return {"kind": "Listing", "data": {"children": children, "after": after, "before": None}}


def post_child(post_id: str, created_utc: float) -> Dict[str, Any]:
    return {"kind": "t3", "data": {"id": post_id, "name": f"t3_{post_id}", "created_utc": created_utc}}
