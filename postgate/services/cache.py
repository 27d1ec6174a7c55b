"""
CacheManager - Async-compatible in-memory cache with dual TTL and LRU eviction.

Features:
- Independent namespaces, each with its own key space and capacity
- Expire after write and expire after access
- LRU eviction once a namespace exceeds max_size
- get_or_compute memoization that skips None and empty results
- Periodic full clear via APScheduler
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

T = TypeVar("T")

POSTS_CACHE = "posts"
POSTS_WITH_COMMENTS_CACHE = "posts-with-comments"
COMMENTS_CACHE = "comments"
CACHE_NAMES = (POSTS_CACHE, POSTS_WITH_COMMENTS_CACHE, COMMENTS_CACHE)


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    key: str
    value: T
    written_at: float
    accessed_at: float

    def is_expired(
        self, now: float, expire_after_write: float, expire_after_access: float
    ) -> bool:
        return (
            now - self.written_at > expire_after_write
            or now - self.accessed_at > expire_after_access
        )


def is_cacheable(value: Any) -> bool:
    """None and empty collections are never stored."""
    if value is None:
        return False
    if isinstance(value, (list, tuple, dict, set)) and not value:
        return False
    return True


class CacheManager:
    """
    Namespaced cache manager.

    Usage:
        cache = CacheManager(max_size=1000)

        posts = await cache.get_or_compute("posts", "all-posts", client.get_posts)

        await cache.evict("posts", "42")
        await cache.clear("posts", "posts-with-comments")
    """

    def __init__(
        self,
        max_size: int = 1000,
        expire_after_write: float = 300.0,
        expire_after_access: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._namespaces: dict[str, OrderedDict[str, CacheEntry[Any]]] = {
            name: OrderedDict() for name in CACHE_NAMES
        }
        self._max_size = max_size
        self._expire_after_write = expire_after_write
        self._expire_after_access = expire_after_access
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    def _namespace(self, name: str) -> OrderedDict[str, CacheEntry[Any]]:
        if name not in self._namespaces:
            self._namespaces[name] = OrderedDict()
        return self._namespaces[name]

    async def get(self, namespace: str, key: str) -> Any | None:
        """Return a live value, refreshing its access time, or None."""
        async with self._lock:
            entries = self._namespace(namespace)
            entry = entries.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {namespace}/{key}")
                return None

            now = self._clock()
            if entry.is_expired(
                now, self._expire_after_write, self._expire_after_access
            ):
                del entries[key]
                self._stats.misses += 1
                self._stats.expirations += 1
                self._log(f"EXPIRED: {namespace}/{key}")
                return None

            entry.accessed_at = now
            entries.move_to_end(key)
            self._stats.hits += 1
            self._log(f"HIT: {namespace}/{key}")
            return entry.value

    async def set(self, namespace: str, key: str, value: Any) -> bool:
        """Store a value. Returns False when the value is not cacheable."""
        if not is_cacheable(value):
            self._log(f"SKIP: {namespace}/{key} (empty result)")
            return False

        now = self._clock()
        async with self._lock:
            entries = self._namespace(namespace)
            entries[key] = CacheEntry(key=key, value=value, written_at=now, accessed_at=now)
            entries.move_to_end(key)

            while len(entries) > self._max_size:
                evicted_key, _ = entries.popitem(last=False)
                self._stats.evictions += 1
                self._log(f"EVICT: {namespace}/{evicted_key}")

            self._log(f"SET: {namespace}/{key}")
            return True

    async def get_or_compute(
        self,
        namespace: str,
        key: str,
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Memoize ``compute()`` under ``(namespace, key)``.

        compute runs outside the lock, so concurrent misses on the same key
        may both call it; the last write wins.
        """
        cached = await self.get(namespace, key)
        if cached is not None:
            return cached

        value = await compute()
        await self.set(namespace, key, value)
        return value

    async def evict(self, namespace: str, key: str) -> bool:
        """Delete a specific key from a namespace."""
        async with self._lock:
            entries = self._namespace(namespace)
            if key in entries:
                del entries[key]
                self._log(f"DELETE: {namespace}/{key}")
                return True
            return False

    async def clear(self, *namespaces: str) -> int:
        """Clear the given namespaces (all of them when none are given)."""
        async with self._lock:
            names = namespaces or tuple(self._namespaces)
            count = 0
            for name in names:
                entries = self._namespace(name)
                count += len(entries)
                entries.clear()
            self._log(f"CLEAR: {count} entries removed from {', '.join(names)}")
            return count

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            removed = 0
            for entries in self._namespaces.values():
                expired_keys = [
                    k
                    for k, v in entries.items()
                    if v.is_expired(
                        now, self._expire_after_write, self._expire_after_access
                    )
                ]
                for key in expired_keys:
                    del entries[key]
                removed += len(expired_keys)

            if removed:
                self._stats.expirations += removed
                self._log(f"CLEANUP: {removed} expired entries removed")
            return removed

    def size(self, namespace: str | None = None) -> int:
        if namespace is not None:
            return len(self._namespaces.get(namespace, ()))
        return sum(len(entries) for entries in self._namespaces.values())

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = self.size()
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


class CacheClearScheduler:
    """
    Clears every cache namespace on a fixed interval.

    When a cleanup job is given, expired entries are also purged every
    `cleanup_interval_seconds`.
    """

    def __init__(
        self,
        clear_job: Callable[[], Awaitable[Any]],
        interval_seconds: int = 300,
        cleanup_job: Callable[[], Awaitable[Any]] | None = None,
        cleanup_interval_seconds: int = 60,
    ):
        self.scheduler = AsyncIOScheduler()
        self._clear_job = clear_job
        self._cleanup_job = cleanup_job
        self.interval_seconds = interval_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._is_running = False

    async def clear_cache_job(self) -> None:
        """Scheduled full clear."""
        try:
            await self._clear_job()
        except Exception as e:
            logger.error(f"Error in scheduled cache clear: {e}")

    async def cleanup_expired_job(self) -> None:
        """Scheduled purge of expired entries."""
        try:
            await self._cleanup_job()
        except Exception as e:
            logger.error(f"Error in scheduled cache cleanup: {e}")

    def start(self) -> None:
        if self._is_running:
            logger.warning("Cache clear scheduler is already running")
            return

        self.scheduler.add_job(
            self.clear_cache_job,
            trigger="interval",
            seconds=self.interval_seconds,
            id="cache_clear_job",
            name="Cache Clear",
            replace_existing=True,
        )
        if self._cleanup_job is not None:
            self.scheduler.add_job(
                self.cleanup_expired_job,
                trigger="interval",
                seconds=self.cleanup_interval_seconds,
                id="cache_cleanup_job",
                name="Cache Cleanup",
                replace_existing=True,
            )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Cache clear scheduler started: clearing every {self.interval_seconds}s"
        )

    def stop(self) -> None:
        if not self._is_running:
            logger.warning("Cache clear scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Cache clear scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running
