"""FastAPI application exposing the posts/comments proxy."""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import httpx
from fastapi import FastAPI, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from postgate.api.problems import problem_response, to_problem
from postgate.models import Comment, Post, ProblemDetail
from postgate.services.cache import CacheClearScheduler, CacheManager
from postgate.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from postgate.services.client import PostsClient, ResilientPostsClient
from postgate.services.errors import ServiceError
from postgate.services.metrics import PrometheusMetrics
from postgate.services.posts import PostService
from postgate.services.retry import RetryConfig
from postgate.settings import Settings, global_settings

MAX_ID = 2**31 - 1

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ProblemDetail, "description": "Invalid request parameters"},
    404: {"model": ProblemDetail, "description": "Resource not found"},
    500: {"model": ProblemDetail, "description": "Internal server error"},
    503: {"model": ProblemDetail, "description": "Upstream unavailable"},
}


def build_post_service(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[PostService, ResilientPostsClient, CacheManager, PrometheusMetrics]:
    """Construct the client, cache and service from settings."""
    client = ResilientPostsClient(
        PostsClient(settings.upstream_base_url, transport=transport),
        retry_config=RetryConfig(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
        timeout=settings.upstream_timeout,
        circuit_breakers=CircuitBreakerRegistry(
            CircuitBreakerConfig(
                failure_rate_threshold=settings.circuit_failure_rate,
                sliding_window_size=settings.circuit_window_size,
                minimum_calls=settings.circuit_minimum_calls,
                reset_timeout=timedelta(seconds=settings.circuit_reset_seconds),
            )
        ),
    )
    cache = CacheManager(
        max_size=settings.cache_max_size,
        expire_after_write=settings.cache_expire_after_write_seconds,
        expire_after_access=settings.cache_expire_after_access_seconds,
    )
    metrics = PrometheusMetrics()
    return PostService(client, cache, metrics), client, cache, metrics


class PostsApi:
    """Routes for posts and comments."""

    def __init__(
        self,
        service: PostService,
        client: ResilientPostsClient,
        cache: CacheManager,
        metrics: PrometheusMetrics,
    ):
        self.service = service
        self.client = client
        self.cache = cache
        self.metrics = metrics

    def register(self, app: FastAPI) -> None:
        route_options = {
            "response_model_exclude_none": True,
            "responses": ERROR_RESPONSES,
        }
        app.get("/posts", response_model=list[Post], tags=["Posts"], **route_options)(
            self.get_posts
        )
        app.get("/posts/{post_id}", response_model=Post, tags=["Posts"], **route_options)(
            self.get_post_by_id
        )
        app.get(
            "/posts/{post_id}/comments", response_model=Post, tags=["Posts"], **route_options
        )(self.get_post_with_comments)
        app.get(
            "/comments", response_model=list[Comment], tags=["Comments"], **route_options
        )(self.get_comments_by_post_id)
        app.get("/health", tags=["Health"])(self.health_check)

    async def get_posts(
        self,
        user_id: int | None = Query(
            None, alias="userId", ge=1, le=MAX_ID, description="Filter by user ID"
        ),
        title: str | None = Query(
            None,
            min_length=1,
            max_length=100,
            description="Filter by title (case-insensitive)",
        ),
    ) -> list[Post]:
        """Retrieve all posts with optional filtering by userId and title."""
        if user_id is not None or (title is not None and title.strip()):
            return await self.service.get_posts_with_filter(
                str(user_id) if user_id is not None else None, title
            )
        return await self.service.get_posts()

    async def get_post_by_id(
        self, post_id: int = Path(..., ge=1, le=MAX_ID, description="Post ID")
    ) -> Post:
        """Retrieve a specific post by its ID."""
        return await self.service.get_post_by_id(str(post_id))

    async def get_post_with_comments(
        self, post_id: int = Path(..., ge=1, le=MAX_ID, description="Post ID")
    ) -> Post:
        """Retrieve a specific post along with all its comments."""
        return await self.service.get_post_by_id_with_comments(str(post_id))

    async def get_comments_by_post_id(
        self, post_id: int = Query(..., alias="postId", ge=1, le=MAX_ID)
    ) -> list[Comment]:
        """Retrieve all comments for a specific post."""
        return await self.service.get_comments_for_post(str(post_id))

    async def health_check(self) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "postgate",
            **self.client.get_circuit_status(),
            "cache": self.cache.get_stats().to_dict(),
            "metrics": self.metrics.to_dict(),
        }


def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
        return problem_response(
            ProblemDetail(title="Invalid Input", status=400, detail=_validation_detail(exc))
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        logger.opt(exception=exc).error(f"Service error on {request.url.path}")
        return problem_response(to_problem(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return problem_response(to_problem(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"General exception on {request.url.path}")
        return problem_response(to_problem(exc))


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        settings: Settings to use (defaults to global_settings)
        transport: Optional httpx transport for the upstream client

    Returns:
        FastAPI app
    """
    settings = settings or global_settings
    service, client, cache, metrics = build_post_service(settings, transport)
    scheduler = CacheClearScheduler(
        service.clear_cache,
        interval_seconds=settings.cache_clear_interval_seconds,
        cleanup_job=cache.cleanup_expired,
        cleanup_interval_seconds=settings.cache_cleanup_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler.start()
        try:
            yield
        finally:
            scheduler.stop()
            await client.close()

    app = FastAPI(
        title="Postgate",
        description="Caching, resilient proxy for a posts/comments API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.post_service = service
    app.state.cache_scheduler = scheduler

    PostsApi(service, client, cache, metrics).register(app)
    register_exception_handlers(app)
    return app
