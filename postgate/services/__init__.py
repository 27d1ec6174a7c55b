"""
Service layer - upstream client, resilience patterns, caching and filtering.

Provides:
- PostsClient / ResilientPostsClient: upstream API access with retry,
  circuit breaker, timeout and fallbacks
- CacheManager: namespaced cache with dual TTL and LRU eviction
- filter_posts: user id / title filtering
- PostService: cache-then-fetch orchestration
"""

from postgate.services.errors import (
    ServiceError,
    CircuitOpenError,
    RequestTimeoutError,
)
from postgate.services.cache import CacheManager, CacheClearScheduler, CacheEntry
from postgate.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from postgate.services.retry import RetryConfig
from postgate.services.resilience import ResiliencePolicy
from postgate.services.client import PostsClient, ResilientPostsClient
from postgate.services.filters import filter_posts
from postgate.services.metrics import MetricsSink, PrometheusMetrics
from postgate.services.posts import PostService

__all__ = [
    # Errors
    "ServiceError",
    "CircuitOpenError",
    "RequestTimeoutError",
    # Cache
    "CacheManager",
    "CacheClearScheduler",
    "CacheEntry",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Resilience
    "RetryConfig",
    "ResiliencePolicy",
    # Client
    "PostsClient",
    "ResilientPostsClient",
    # Service
    "filter_posts",
    "MetricsSink",
    "PrometheusMetrics",
    "PostService",
]
