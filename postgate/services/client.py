"""
PostsClient - Async HTTP client for the upstream posts/comments API.

PostsClient maps every upstream failure into ServiceError.
ResilientPostsClient wraps each PostsClient operation with a
ResiliencePolicy and a fallback:
- list operations degrade to an empty list
- single-post operations raise a 503 ServiceError
"""

import asyncio
from typing import Any, Callable

import httpx
from loguru import logger

from postgate.models import Comment, Post
from postgate.services.circuit_breaker import CircuitBreakerRegistry
from postgate.services.errors import ServiceError
from postgate.services.resilience import ResiliencePolicy
from postgate.services.retry import RetryConfig

DEFAULT_BASE_URL = "https://jsonplaceholder.typicode.com"


async def _log_request(request: httpx.Request) -> None:
    logger.info(f"Upstream request: {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.info(
        f"Upstream response: {response.status_code} for {request.method} {request.url}"
    )


class PostsClient:
    """
    Client for a JSONPlaceholder-style API.

    Usage:
        async with PostsClient("https://jsonplaceholder.typicode.com") as client:
            posts = await client.get_posts()
            post = await client.get_post_by_id(1)
    """

    SERVICE_ID = "jsonplaceholder"
    POSTS_ENDPOINT = "/posts"
    POST_BY_ID_ENDPOINT = "/posts/{id}"
    COMMENTS_BY_POST_ENDPOINT = "/posts/{post_id}/comments"
    COMMENTS_ENDPOINT = "/comments"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            # No client-side timeout; ResiliencePolicy bounds each call
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(None),
                follow_redirects=True,
                transport=self._transport,
                event_hooks={"request": [_log_request], "response": [_log_response]},
            )
        return self._http_client

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        client = await self._get_http_client()
        response = await client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def get_posts(self) -> list[Post]:
        """Fetch all posts. Any failure becomes a 500 ServiceError."""
        try:
            logger.info(f"Fetching all posts from {self.base_url}{self.POSTS_ENDPOINT}")
            data = await self._get_json(self.POSTS_ENDPOINT)
            posts = [Post.model_validate(item) for item in data or []]
            logger.info(f"Successfully fetched {len(posts)} posts")
            return posts

        except Exception as e:
            logger.error(f"Error fetching posts: {e!r}")
            raise ServiceError(
                "Failed to fetch posts",
                title="External Service Error",
                status_code=500,
                cause=e,
            ) from e

    async def get_post_by_id(self, post_id: str | int) -> Post:
        """Fetch a single post."""
        path = self.POST_BY_ID_ENDPOINT.format(id=post_id)
        try:
            logger.info(f"Fetching post with id: {post_id} from {self.base_url}{path}")
            data = await self._get_json(path)

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"HTTP Error Response: Status Code: {status}, post id: {post_id}")
            if status == 404:
                raise ServiceError(
                    f"Cannot find a Post with id {post_id}",
                    title="Resource Not Found",
                    status_code=404,
                ) from e
            raise ServiceError(
                f"Failed to fetch post with id: {post_id}",
                title="External Service Error",
                status_code=status,
                cause=e,
            ) from e

        except Exception as e:
            logger.error(f"Unexpected error fetching post with id {post_id}: {e!r}")
            raise ServiceError(
                "Unexpected error occurred while fetching post",
                title="Internal Server Error",
                status_code=500,
                cause=e,
            ) from e

        if not data:
            raise ServiceError(
                f"Cannot find a Post with id {post_id}",
                title="Resource Not Found",
                status_code=404,
            )

        try:
            post = Post.model_validate(data)
        except Exception as e:
            raise ServiceError(
                "Unexpected error occurred while fetching post",
                title="Internal Server Error",
                status_code=500,
                cause=e,
            ) from e

        logger.info(f"Successfully fetched post with id: {post_id}")
        return post

    async def get_comments_for_post(self, post_id: str | int) -> list[Comment]:
        """Fetch comments via the nested /posts/{id}/comments resource."""
        return await self._fetch_comments(
            self.COMMENTS_BY_POST_ENDPOINT.format(post_id=post_id), post_id
        )

    async def get_comments_by_post_id(self, post_id: str | int) -> list[Comment]:
        """Fetch comments via /comments?postId={id}."""
        return await self._fetch_comments(
            self.COMMENTS_ENDPOINT, post_id, params={"postId": post_id}
        )

    async def _fetch_comments(
        self,
        path: str,
        post_id: str | int,
        params: dict[str, Any] | None = None,
    ) -> list[Comment]:
        try:
            logger.info(f"Fetching comments for post id: {post_id} from {self.base_url}{path}")
            data = await self._get_json(path, params=params)
            comments = [Comment.model_validate(item) for item in data or []]

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(
                f"HTTP Error Response: Status Code: {status}, comments for post id: {post_id}"
            )
            if status == 404:
                raise ServiceError(
                    f"Cannot find comments for Post with id {post_id}",
                    title="Resource Not Found",
                    status_code=404,
                ) from e
            raise ServiceError(
                f"Failed to fetch comments for post id: {post_id}",
                title="External Service Error",
                status_code=status,
                cause=e,
            ) from e

        except Exception as e:
            logger.error(f"Unexpected error fetching comments for post id {post_id}: {e!r}")
            raise ServiceError(
                "Unexpected error occurred while fetching comments",
                title="Internal Server Error",
                status_code=500,
                cause=e,
            ) from e

        logger.info(f"Successfully fetched {len(comments)} comments for post id: {post_id}")
        return comments

    async def get_post_by_id_with_comments(self, post_id: str | int) -> Post:
        """Fetch a post and attach its comments."""
        try:
            logger.info(f"Fetching post with id: {post_id} including comments")
            post = await self.get_post_by_id(post_id)
            comments = await self.get_comments_for_post(post_id)
            logger.info(f"Successfully fetched post with {len(comments)} comments")
            return post.with_comments(comments)

        except ServiceError:
            raise

        except Exception as e:
            logger.error(f"Error fetching post with comments for id {post_id}: {e!r}")
            raise ServiceError(
                "Failed to fetch post with comments",
                title="External Service Error",
                status_code=500,
                cause=e,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("PostsClient closed")

    async def __aenter__(self) -> "PostsClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class ResilientPostsClient:
    """
    PostsClient with retry, circuit breaker, timeout and fallbacks.

    Each operation gets its own circuit breaker, keyed by operation name.
    """

    def __init__(
        self,
        client: PostsClient,
        retry_config: RetryConfig | None = None,
        timeout: float | None = 10.0,
        circuit_breakers: CircuitBreakerRegistry | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self._client = client
        self._retry_config = retry_config or RetryConfig()
        self._timeout = timeout
        self._circuit_breakers = circuit_breakers or CircuitBreakerRegistry()
        self._sleep = sleep
        self._policies: dict[str, ResiliencePolicy] = {}

    def _policy(self, name: str) -> ResiliencePolicy:
        if name not in self._policies:
            self._policies[name] = ResiliencePolicy(
                name,
                self._circuit_breakers.get(name),
                retry_config=self._retry_config,
                timeout=self._timeout,
                sleep=self._sleep,
            )
        return self._policies[name]

    @staticmethod
    def _empty_list(error: Exception) -> list:
        return []

    async def get_posts(self) -> list[Post]:
        return await self._policy("get_posts").call(
            self._client.get_posts, fallback=self._empty_list
        )

    def get_posts_async(self) -> "asyncio.Task[list[Post]]":
        """Schedule get_posts on the running loop and return the task."""
        return asyncio.create_task(self.get_posts())

    async def get_post_by_id(self, post_id: str | int) -> Post:
        def fallback(error: Exception) -> Post:
            raise ServiceError(
                f"Service temporarily unavailable for post {post_id}",
                title="Service Unavailable",
                status_code=503,
                cause=error,
            )

        return await self._policy("get_post_by_id").call(
            self._client.get_post_by_id, post_id, fallback=fallback
        )

    async def get_post_by_id_with_comments(self, post_id: str | int) -> Post:
        def fallback(error: Exception) -> Post:
            raise ServiceError(
                f"Service temporarily unavailable for post with comments {post_id}",
                title="Service Unavailable",
                status_code=503,
                cause=error,
            )

        return await self._policy("get_post_by_id_with_comments").call(
            self._client.get_post_by_id_with_comments, post_id, fallback=fallback
        )

    async def get_comments_for_post(self, post_id: str | int) -> list[Comment]:
        return await self._policy("get_comments_for_post").call(
            self._client.get_comments_for_post, post_id, fallback=self._empty_list
        )

    async def get_comments_by_post_id(self, post_id: str | int) -> list[Comment]:
        return await self._policy("get_comments_by_post_id").call(
            self._client.get_comments_by_post_id, post_id, fallback=self._empty_list
        )

    def get_circuit_status(self) -> dict[str, Any]:
        """Circuit breaker status per operation."""
        return {
            "circuit_breakers": self._circuit_breakers.get_all_status(),
            "open_circuits": self._circuit_breakers.get_open_circuits(),
        }

    def reset_circuits(self) -> None:
        self._circuit_breakers.reset_all()

    async def close(self) -> None:
        await self._client.close()
