"""Retry with exponential backoff.

A single policy object used wherever a transport failure is worth waiting
out: filter setup and block subscription recovery.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay: Seconds to wait after the first failure.
        max_delay: Cap applied to the doubling delay.
    """

    max_attempts: int = 5
    initial_delay: float = 5.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delays(self) -> list[float]:
        """Sleep durations between consecutive attempts."""
        out: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            out.append(min(delay, self.max_delay))
            delay *= 2
        return out


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine factory.
        policy: Attempt count and delay bounds.
        retry_on: Exception types that trigger another attempt. Anything
            else propagates immediately.
        name: Label used in log lines and the final error.
        sleep: Injected for tests.

    Returns:
        The first successful result.

    Raises:
        RetryExhaustedError: If all attempts failed.
    """
    delays = policy.delays()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error("%s failed (attempt %d/%d), giving up: %s", name, attempt, policy.max_attempts, e)
                raise RetryExhaustedError(name, attempt, e) from e
            delay = delays[attempt - 1]
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                name,
                attempt,
                policy.max_attempts,
                delay,
                e,
            )
            await sleep(delay)
    raise AssertionError("unreachable")
