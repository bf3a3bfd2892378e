"""
Retry with exponential backoff and jitter.

retry_delay() and should_retry() are pure; with_retry() drives an async
operation through them. Retried failures:
  - network-layer errors (connect, read, timeouts)
  - BadResponse whose status code is in the policy's retryable set

Never retried:
  - cancellation
  - any other error kind
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx

from dialtone.config import RetryPolicy
from dialtone.errors import BadResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_delay(
    attempt: int,
    policy: RetryPolicy,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Seconds to wait after failed attempt N (1-based) before the next one."""
    try:
        exponent = policy.backoff_multiplier ** max(0, attempt - 1)
        delay = min(policy.max_delay, policy.base_delay * exponent)
    except OverflowError:
        # growth past float range is capped like any other large delay
        delay = policy.max_delay if policy.base_delay > 0 else 0.0
    jitter = delay * policy.jitter_ratio
    return max(0.0, delay + rand(-jitter, jitter))


def should_retry(error: BaseException, policy: RetryPolicy) -> bool:
    """Determine if a failure is retryable (transient)."""
    if isinstance(error, asyncio.CancelledError):
        return False
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, BadResponse):
        return error.status_code in policy.retryable_status_codes
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    label: str = "request",
) -> T:
    """
    Await operation() until it succeeds, fails for good, or attempts run out.
    The last error is re-raised unchanged.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e, policy):
                logger.debug("%s failed with non-retryable %s", label, type(e).__name__)
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s exhausted retries after %d attempt(s): %s",
                    label, attempt, e,
                )
                raise

            delay = retry_delay(attempt, policy)
            logger.warning(
                "%s transient failure, retry in %.1fs (%d/%d): %s",
                label, delay, attempt, policy.max_attempts - 1, e,
            )
            if delay > 0:
                await sleep(delay)
            attempt += 1
