"""
PostService - Cache-then-fetch orchestration over the resilient posts client.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from loguru import logger

from postgate.models import Comment, Post
from postgate.services.cache import (
    COMMENTS_CACHE,
    POSTS_CACHE,
    POSTS_WITH_COMMENTS_CACHE,
    CacheManager,
)
from postgate.services.client import ResilientPostsClient
from postgate.services.filters import filter_posts
from postgate.services.metrics import MetricsSink, PrometheusMetrics

ALL_POSTS_KEY = "all-posts"


class PostService:
    """
    Posts and comments with caching, filtering and metrics.

    Usage:
        service = PostService(ResilientPostsClient(PostsClient()), CacheManager())
        posts = await service.get_posts_with_filter("1", "sample")
    """

    def __init__(
        self,
        client: ResilientPostsClient,
        cache: CacheManager,
        metrics: MetricsSink | None = None,
    ):
        self._client = client
        self._cache = cache
        self._metrics = metrics if metrics is not None else PrometheusMetrics()

    @asynccontextmanager
    async def _timed(self, name: str) -> AsyncIterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self._metrics.observe(name, time.perf_counter() - started)

    def _counted(
        self, name: str, fetch: Callable[[], Awaitable[Any]]
    ) -> Callable[[], Awaitable[Any]]:
        """Wrap an upstream fetch so each cache miss bumps `name`."""

        async def compute() -> Any:
            self._metrics.increment(name)
            return await fetch()

        return compute

    async def get_posts(self) -> list[Post]:
        logger.info("Fetching all posts")
        self._metrics.increment("posts.requests", type="all")
        async with self._timed("posts.fetch.time"):
            return await self._cache.get_or_compute(
                POSTS_CACHE,
                ALL_POSTS_KEY,
                self._counted("posts.fetch.count", self._client.get_posts),
            )

    async def get_posts_with_filter(
        self, user_id_filter: str | None, title_filter: str | None
    ) -> list[Post]:
        logger.info(
            f"Fetching posts with filters - userId: {user_id_filter}, title: {title_filter}"
        )
        async with self._timed("posts.filter.time"):
            posts = await self.get_posts()
            return filter_posts(posts, user_id_filter, title_filter)

    async def get_post_by_id(self, post_id: str) -> Post:
        logger.info(f"Fetching post with id: {post_id}")
        self._metrics.increment("post.requests")
        async with self._timed("post.fetch.time"):
            return await self._cache.get_or_compute(
                POSTS_CACHE,
                post_id,
                self._counted(
                    "post.fetch.count", lambda: self._client.get_post_by_id(post_id)
                ),
            )

    async def get_post_by_id_with_comments(self, post_id: str) -> Post:
        logger.info(f"Fetching post with id: {post_id} including comments")
        async with self._timed("post.with.comments.fetch.time"):
            return await self._cache.get_or_compute(
                POSTS_WITH_COMMENTS_CACHE,
                post_id,
                lambda: self._client.get_post_by_id_with_comments(post_id),
            )

    async def get_comments_for_post(self, post_id: str) -> list[Comment]:
        logger.info(f"Fetching comments for post id: {post_id}")
        self._metrics.increment("comments.requests")
        async with self._timed("comments.fetch.time"):
            return await self._cache.get_or_compute(
                COMMENTS_CACHE,
                post_id,
                self._counted(
                    "comments.fetch.count",
                    lambda: self._client.get_comments_by_post_id(post_id),
                ),
            )

    async def clear_cache(self) -> None:
        logger.info("Clearing all caches")
        await self._cache.clear()

    async def evict_post_cache(self, post_id: str) -> None:
        logger.info(f"Evicting cache for post id: {post_id}")
        await self._cache.evict(POSTS_CACHE, post_id)

    async def evict_all_posts_cache(self) -> None:
        logger.info("Evicting all posts cache")
        await self._cache.clear(POSTS_CACHE, POSTS_WITH_COMMENTS_CACHE)
