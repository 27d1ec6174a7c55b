"""
Retry with exponential backoff for transient failures.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay before the attempt following ``attempt``."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    should_retry: Callable[[Exception], bool],
    name: str = "call",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Await ``func`` until it succeeds, retrying errors accepted by ``should_retry``.

    The last error is re-raised once attempts are exhausted. Errors rejected
    by ``should_retry`` propagate immediately.
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
            if attempt > 1:
                logger.info(f"Retry of '{name}' succeeded on attempt {attempt}")
            return result

        except Exception as e:
            if not should_retry(e):
                raise

            if attempt >= config.max_attempts:
                logger.error(
                    f"All {config.max_attempts} attempts of '{name}' exhausted: {e}"
                )
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(
                f"Attempt {attempt} of '{name}' failed, retrying in {delay:.2f}s: {e}"
            )
            await sleep(delay)

    raise RuntimeError(f"Retry loop for '{name}' ended without a result")
