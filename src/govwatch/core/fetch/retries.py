"""
Retry utilities with tenacity.

Provides the two retry shapes the sources need:
- ``retry_async``: re-run a coroutine on transient exceptions with
  exponential backoff (HTTP 5xx on the static portals)
- ``retry_until``: poll a condition a fixed number of times with a fixed
  delay (browser steps that only settle after client-side scripts run)
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_random_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 30  # seconds
DEFAULT_MULTIPLIER = 2


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        multiplier: float = DEFAULT_MULTIPLIER,
        jitter: bool = True,
        retry_exceptions: tuple[type[Exception], ...] | None = None,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts
            min_wait: Minimum wait time in seconds
            max_wait: Maximum wait time in seconds
            multiplier: Exponential backoff multiplier
            jitter: Add random jitter to wait times
            retry_exceptions: Exception types to retry on
        """
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier
        self.jitter = jitter
        self.retry_exceptions = retry_exceptions or (Exception,)

    def wait_strategy(self):
        if self.jitter:
            return wait_random_exponential(
                multiplier=self.multiplier,
                min=self.min_wait,
                max=self.max_wait,
            )
        return wait_exponential(
            multiplier=self.multiplier,
            min=self.min_wait,
            max=self.max_wait,
        )


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Execute an async function with retry logic.

    Args:
        coro_func: Async function to call
        *args: Positional arguments
        config: Retry configuration
        **kwargs: Keyword arguments

    Returns:
        Function result

    Raises:
        The last exception once all attempts fail
    """
    if config is None:
        config = RetryConfig()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_if_exception_type(config.retry_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)


async def retry_until(
    predicate: Callable[[int], Awaitable[bool]],
    *,
    max_attempts: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (),
) -> bool:
    """Call ``predicate`` until it returns True or attempts run out.

    The predicate receives the 1-based attempt number. Exceptions listed in
    ``retry_on`` count as a failed attempt; any other exception propagates.

    Args:
        predicate: Async condition to evaluate
        max_attempts: Maximum number of evaluations
        delay: Fixed pause between attempts in seconds
        retry_on: Exception types treated as a failed attempt

    Returns:
        True if the condition held within the budget, False otherwise
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda ok: not ok) | retry_if_exception_type(retry_on),
        retry_error_callback=lambda state: False,
    )

    attempts = 0

    async def evaluate() -> bool:
        nonlocal attempts
        attempts += 1
        return bool(await predicate(attempts))

    return await retrying(evaluate)
