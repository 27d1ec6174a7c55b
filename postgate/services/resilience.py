"""
ResiliencePolicy - Retry, circuit breaker and timeout around a single operation.

Each attempt:
1. Checks the operation's circuit breaker (OPEN → CircuitOpenError)
2. Runs the call under asyncio.wait_for (expiry → RequestTimeoutError)
3. Records the outcome on the breaker

Transient failures (transport errors, timeouts, upstream 5xx) are retried
with backoff. When retries are exhausted or the circuit is open, the
fallback is invoked with the triggering error. Client errors (4xx)
propagate untouched.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from postgate.services.circuit_breaker import CircuitBreaker
from postgate.services.errors import CircuitOpenError, RequestTimeoutError, ServiceError
from postgate.services.retry import RetryConfig, retry_async

T = TypeVar("T")

Fallback = Callable[[Exception], Any]


def is_transient(error: BaseException) -> bool:
    """Return True for failures worth retrying."""
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, RequestTimeoutError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, ServiceError) and error.cause is not None:
        return is_transient(error.cause)
    return False


class ResiliencePolicy:
    """
    Resilience wrapper for one named operation.

    Usage:
        policy = ResiliencePolicy("get_posts", registry.get("get_posts"))
        posts = await policy.call(client.get_posts, fallback=lambda e: [])
    """

    def __init__(
        self,
        name: str,
        breaker: CircuitBreaker,
        retry_config: RetryConfig | None = None,
        timeout: float | None = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.breaker = breaker
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._sleep = sleep

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        fallback: Fallback | None = None,
    ) -> T:
        """Run ``func(*args)`` under retry, circuit breaker and timeout."""
        try:
            return await retry_async(
                lambda: self._attempt(func, *args),
                self.retry_config,
                should_retry=is_transient,
                name=self.name,
                sleep=self._sleep,
            )
        except Exception as e:
            if fallback is None or not (
                isinstance(e, CircuitOpenError) or is_transient(e)
            ):
                raise
            logger.warning(f"Fallback triggered for {self.name}: {e}")
            result = fallback(e)
            if inspect.isawaitable(result):
                result = await result
            return result

    async def _attempt(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Execute a single guarded attempt."""
        if not self.breaker.can_request():
            raise CircuitOpenError(self.name, self.breaker.get_time_until_reset() or 0)

        try:
            if self.timeout:
                result = await asyncio.wait_for(func(*args), timeout=self.timeout)
            else:
                result = await func(*args)
        except asyncio.TimeoutError as e:
            self.breaker.record_failure()
            raise RequestTimeoutError(self.name, self.timeout) from e
        except Exception as e:
            # A 4xx means the dependency answered; only transient errors count
            if is_transient(e):
                self.breaker.record_failure()
            else:
                self.breaker.record_success()
            raise
        except BaseException:
            # Cancelled mid-attempt: no outcome to record
            self.breaker.release_half_open_slot()
            raise

        self.breaker.record_success()
        return result

