from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from chatdelta.cancellation import CancellationToken
from chatdelta.errors import RequestCancelledError, is_retryable

T = TypeVar("T")

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
_JITTER_FRACTION = 0.1


class RetryStrategy(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    EXPONENTIAL_WITH_JITTER = "exponential_with_jitter"


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a failing call.

    ``max_retries`` counts retries after the first attempt, so 0 means a
    single attempt.
    """

    max_retries: int = 3
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        object.__setattr__(self, "strategy", RetryStrategy(self.strategy))


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in seconds before retry number ``attempt + 1`` (``attempt`` is 0-based)."""
    if policy.strategy == RetryStrategy.FIXED:
        return policy.base_delay
    if policy.strategy == RetryStrategy.LINEAR:
        return policy.base_delay * (attempt + 1)

    capped = min(policy.base_delay * (2 ** attempt), policy.max_delay)
    if policy.strategy == RetryStrategy.EXPONENTIAL_WITH_JITTER:
        return capped + random.uniform(0, capped * _JITTER_FRACTION)
    return capped


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = str(exc) if exc else "Unknown"
    stop_after = getattr(retry_state.retry_object.stop, "max_attempt_number", "?")
    logger.warning(f"{reason}. Retrying in {wait:.2f}s (attempt {attempt}/{stop_after})...")


def _cancellable_sleep(token: CancellationToken | None) -> Callable[[float], Awaitable[None]]:
    async def sleep(seconds: float) -> None:
        if token is None:
            await asyncio.sleep(seconds)
            return
        if await token.wait(seconds):
            logger.debug(f"Retry wait aborted: {token.reason}")
            raise RequestCancelledError(token.reason or "cancelled")

    return sleep


async def execute_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    *,
    token: CancellationToken | None = None,
) -> T:
    """Run ``operation`` until it succeeds, fails for good, or the token fires.

    Non-retryable errors propagate on first occurrence. The last retryable
    error is re-raised unchanged once ``policy.max_retries`` is spent.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=lambda retry_state: compute_delay(policy, retry_state.attempt_number - 1),
        sleep=_cancellable_sleep(token),
        before_sleep=_on_retry,
        reraise=True,
    )

    # tenacity awaits only coroutine functions; operation may be a lambda
    async def _attempt() -> T:
        return await operation()

    return await retrying(_attempt)


async def execute_with_exponential_backoff(
    retries: int,
    base_delay: float,
    operation: Callable[[], Awaitable[T]],
    *,
    token: CancellationToken | None = None,
) -> T:
    policy = RetryPolicy(
        max_retries=retries,
        strategy=RetryStrategy.EXPONENTIAL,
        base_delay=base_delay,
        max_delay=DEFAULT_MAX_DELAY,
    )
    return await execute_with_retry(policy, operation, token=token)
