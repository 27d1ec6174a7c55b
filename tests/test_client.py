"""
Unit tests for PostsClient and ResilientPostsClient against a stubbed upstream.
"""

import httpx
import pytest

from helpers import BASE_URL, Upstream, connection_refused, no_sleep
from postgate.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from postgate.services.client import PostsClient, ResilientPostsClient
from postgate.services.errors import ServiceError
from postgate.services.retry import RetryConfig


def respond(status: int, json=None):
    return Upstream(lambda request: httpx.Response(status, json=json))


@pytest.fixture
async def client(upstream):
    async with PostsClient(BASE_URL, transport=upstream.transport) as client:
        yield client


def resilient(upstream: Upstream) -> ResilientPostsClient:
    return ResilientPostsClient(
        PostsClient(BASE_URL, transport=upstream.transport),
        retry_config=RetryConfig(max_attempts=3, base_delay=0, jitter=False),
        timeout=5.0,
        circuit_breakers=CircuitBreakerRegistry(
            CircuitBreakerConfig(minimum_calls=3, sliding_window_size=3)
        ),
        sleep=no_sleep,
    )


class TestPostsClient:
    """Test cases for PostsClient."""

    async def test_get_posts(self, client, upstream):
        posts = await client.get_posts()

        assert [p.id for p in posts] == [1, 2, 3]
        assert posts[0].user_id == 1
        assert posts[0].title == "Sample Post"
        assert upstream.calls == ["/posts"]

    async def test_get_posts_null_body_is_empty(self):
        upstream = Upstream(lambda request: httpx.Response(200, content=b"null"))
        async with PostsClient(BASE_URL, transport=upstream.transport) as client:
            assert await client.get_posts() == []

    async def test_get_posts_failure_is_external_service_error(self):
        async with PostsClient(BASE_URL, transport=respond(404).transport) as client:
            with pytest.raises(ServiceError) as exc_info:
                await client.get_posts()

        error = exc_info.value
        assert error.status_code == 500
        assert error.title == "External Service Error"
        assert str(error) == "Failed to fetch posts"
        assert isinstance(error.cause, httpx.HTTPStatusError)

    async def test_get_post_by_id(self, client):
        post = await client.get_post_by_id("2")

        assert post.id == 2
        assert post.user_id == 2
        assert post.title == "Other"
        assert post.body == "second body"
        assert post.comments is None

    async def test_get_post_by_id_not_found(self, client):
        with pytest.raises(ServiceError) as exc_info:
            await client.get_post_by_id("999")

        error = exc_info.value
        assert error.status_code == 404
        assert error.title == "Resource Not Found"
        assert error.detail == "Cannot find a Post with id 999"

    async def test_get_post_by_id_upstream_error_keeps_status(self):
        async with PostsClient(BASE_URL, transport=respond(502).transport) as client:
            with pytest.raises(ServiceError) as exc_info:
                await client.get_post_by_id("1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.title == "External Service Error"

    async def test_get_post_by_id_transport_error(self):
        upstream = Upstream(connection_refused)
        async with PostsClient(BASE_URL, transport=upstream.transport) as client:
            with pytest.raises(ServiceError) as exc_info:
                await client.get_post_by_id("1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.title == "Internal Server Error"
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    async def test_get_comments_for_post(self, client, upstream):
        comments = await client.get_comments_for_post("1")

        assert [c.id for c in comments] == [10, 11]
        assert comments[0].post_id == 1
        assert upstream.calls == ["/posts/1/comments"]

    async def test_get_comments_by_post_id_uses_query(self, client, upstream):
        comments = await client.get_comments_by_post_id("1")

        assert [c.id for c in comments] == [10, 11]
        assert upstream.calls == ["/comments"]

    async def test_comments_not_found(self):
        async with PostsClient(BASE_URL, transport=respond(404).transport) as client:
            with pytest.raises(ServiceError) as exc_info:
                await client.get_comments_by_post_id("7")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Cannot find comments for Post with id 7"

    async def test_get_post_by_id_with_comments(self, client):
        post = await client.get_post_by_id_with_comments("1")

        assert post.id == 1
        assert [c.id for c in post.comments] == [10, 11]

    async def test_get_post_by_id_with_comments_propagates_not_found(self, client):
        with pytest.raises(ServiceError) as exc_info:
            await client.get_post_by_id_with_comments("999")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Cannot find a Post with id 999"


class TestResilientPostsClient:
    """Test cases for ResilientPostsClient fallbacks."""

    async def test_passes_through_on_success(self, upstream):
        client = resilient(upstream)

        post = await client.get_post_by_id("1")

        assert post.title == "Sample Post"
        await client.close()

    async def test_get_posts_degrades_to_empty_list(self):
        upstream = Upstream(connection_refused)
        client = resilient(upstream)

        assert await client.get_posts() == []
        assert upstream.count("/posts") == 3

    async def test_comment_lists_degrade_to_empty_list(self):
        client = resilient(Upstream(connection_refused))

        assert await client.get_comments_for_post("1") == []
        assert await client.get_comments_by_post_id("1") == []

    async def test_get_post_by_id_raises_service_unavailable(self):
        client = resilient(Upstream(connection_refused))

        with pytest.raises(ServiceError) as exc_info:
            await client.get_post_by_id("1")

        error = exc_info.value
        assert error.status_code == 503
        assert error.title == "Service Unavailable"
        assert error.detail == "Service temporarily unavailable for post 1"

    async def test_get_post_with_comments_raises_service_unavailable(self):
        client = resilient(Upstream(connection_refused))

        with pytest.raises(ServiceError) as exc_info:
            await client.get_post_by_id_with_comments("1")

        assert exc_info.value.status_code == 503
        assert exc_info.value.detail == (
            "Service temporarily unavailable for post with comments 1"
        )

    async def test_not_found_is_not_retried_or_masked(self, upstream):
        client = resilient(upstream)

        with pytest.raises(ServiceError) as exc_info:
            await client.get_post_by_id("999")

        assert exc_info.value.status_code == 404
        assert upstream.count("/posts/999") == 1

    async def test_open_circuit_skips_network(self):
        upstream = Upstream(connection_refused)
        client = resilient(upstream)

        await client.get_posts()
        calls = len(upstream.calls)
        assert client.get_circuit_status()["open_circuits"] == ["get_posts"]

        assert await client.get_posts() == []
        assert len(upstream.calls) == calls

    async def test_circuits_are_per_operation(self):
        upstream = Upstream(connection_refused)
        client = resilient(upstream)

        await client.get_posts()

        status = client.get_circuit_status()
        assert status["circuit_breakers"]["get_posts"]["state"] == "OPEN"
        assert "get_post_by_id" not in status["circuit_breakers"]

        client.reset_circuits()
        assert client.get_circuit_status()["open_circuits"] == []

    async def test_get_posts_async_returns_task(self, upstream):
        client = resilient(upstream)

        task = client.get_posts_async()
        posts = await task

        assert [p.id for p in posts] == [1, 2, 3]
