"""
Test helpers: upstream stubs, fake clocks and sample data.
"""

from typing import Any, Callable

import httpx

from postgate.models import Post

BASE_URL = "https://upstream.test"

POSTS_JSON = [
    {"userId": 1, "id": 1, "title": "Sample Post", "body": "first body"},
    {"userId": 2, "id": 2, "title": "Other", "body": "second body"},
    {"userId": 1, "id": 3, "title": "Another sample", "body": "third body"},
]

COMMENTS_JSON = [
    {"postId": 1, "id": 10, "name": "c1", "email": "a@example.com", "body": "nice"},
    {"postId": 1, "id": 11, "name": "c2", "email": "b@example.com", "body": "meh"},
]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Upstream:
    """Routes requests to a handler and counts calls per path."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        return self.handler(request)

    def count(self, path: str) -> int:
        return self.calls.count(path)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def jsonplaceholder(request: httpx.Request) -> httpx.Response:
    """A small in-memory JSONPlaceholder."""
    path = request.url.path
    if path == "/posts":
        return httpx.Response(200, json=POSTS_JSON)
    if path.startswith("/posts/") and path.endswith("/comments"):
        post_id = int(path.split("/")[2])
        if not any(p["id"] == post_id for p in POSTS_JSON):
            return httpx.Response(404, json={})
        return httpx.Response(
            200, json=[c for c in COMMENTS_JSON if c["postId"] == post_id]
        )
    if path.startswith("/posts/"):
        post_id = int(path.split("/")[2])
        for post in POSTS_JSON:
            if post["id"] == post_id:
                return httpx.Response(200, json=post)
        return httpx.Response(404, json={})
    if path == "/comments":
        post_id = int(request.url.params["postId"])
        return httpx.Response(
            200, json=[c for c in COMMENTS_JSON if c["postId"] == post_id]
        )
    return httpx.Response(404)


def connection_refused(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


async def no_sleep(seconds: float) -> None:
    return None


def make_post(post_id: int, user_id: int, title: Any) -> Post:
    return Post(id=post_id, userId=user_id, title=title, body="")
