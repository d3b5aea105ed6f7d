"""Bounded retry with linear backoff, built on tenacity.

RetryPolicy holds the numbers; execute_with_retry runs any async operation
under a policy. Neither knows about backends: the operation decides what a
retryable failure is by raising one of ``retry_on``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from src.advisor_ai.insights.errors import BackendExecutionError
from src.advisor_ai.insights.schemas import ProcessingConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Wait before attempt n+1 is min(BASE * n, MAX) seconds
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 3.0

__all__ = ["RetryError", "RetryPolicy", "execute_with_retry"]


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them.

    Attributes:
        max_attempts: Total attempts, at least 1.
        base_delay: Seconds waited after the first failure; each further
            failure adds the same amount again.
        max_delay: Upper bound on any single wait.
    """

    max_attempts: int = 2
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            object.__setattr__(self, "max_attempts", 1)

    @classmethod
    def from_config(
        cls,
        config: ProcessingConfig,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ) -> RetryPolicy:
        """max_retries counts total attempts; 0 still means one attempt."""
        return cls(
            max_attempts=max(1, config.max_retries),
            base_delay=base_delay,
            max_delay=max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * attempt, self.max_delay)

    def total_delay(self) -> float:
        """Sum of all waits when every attempt fails."""
        return sum(self.delay_for(n) for n in range(1, self.max_attempts))

    def wait(self) -> wait_incrementing:
        return wait_incrementing(
            start=self.base_delay,
            increment=self.base_delay,
            max=self.max_delay,
        )


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "processing.attempt_failed",
        attempt=retry_state.attempt_number,
        retry_in_s=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error),
    )


async def execute_with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (BackendExecutionError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Async callable receiving the 1-based attempt number.
        policy: Attempt count and backoff.
        retry_on: Exception types that trigger another attempt. Anything
            else propagates immediately.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The operation's result.

    Raises:
        RetryError: When every attempt failed. ``last_attempt`` carries the
            attempt number and the final exception.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait(),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=False,
    )

    async for attempt in retrying:
        with attempt:
            result = await operation(attempt.retry_state.attempt_number)
    return result
