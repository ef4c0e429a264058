"""Retryable EC2 error classification with exponential backoff retry.

Classifies EC2 errors as retryable (throttling, transient server faults)
or permanent. Only idempotent calls (describe, tag) are wrapped; attach
and detach surface every error to the allocator, which has its own
handling for device-name conflicts.

Usage:
    from blocker.retryable import is_retryable, with_retry

    volumes = await with_retry(lambda: ec2.describe_volumes(Filters=filters))
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from botocore.exceptions import ClientError, EndpointConnectionError

from blocker.logging_schema import LogEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


EC2_RETRYABLE_CODES = frozenset({
    "RequestLimitExceeded",
    "Throttling",
    "ThrottlingException",
    "InternalError",
    "InternalFailure",
    "ServiceUnavailable",
    "Unavailable",
})


def is_retryable(exc: Exception) -> bool:
    """Check if error is retryable (transient).

    Args:
        exc: Exception to classify

    Returns:
        True if error is transient and the call can be repeated
    """
    if isinstance(exc, asyncio.TimeoutError):
        return True

    if isinstance(exc, EndpointConnectionError):
        return True

    if isinstance(exc, ClientError):
        error_code = exc.response.get("Error", {}).get("Code", "")
        return error_code in EC2_RETRYABLE_CODES

    # Unknown errors - conservative: not retryable
    return False


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
) -> T:
    """Execute async operation with exponential backoff retry.

    Non-retryable errors are raised immediately.

    Args:
        coro_factory: Factory function that creates new coroutine for each attempt
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 0.5)
        max_delay: Maximum delay in seconds (default: 10.0)

    Returns:
        Result of successful operation

    Raises:
        Exception: The last exception if all retries fail, or immediately
                   for non-retryable errors
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as exc:
            if not is_retryable(exc) or attempt == max_retries:
                raise

            delay = min(base_delay * (2**attempt), max_delay)
            # Jitter: 50% ~ 150% of delay
            jittered_delay = delay * (0.5 + random.random())
            logger.warning(
                "Retryable EC2 error (attempt %d/%d, retry in %.1fs): %s",
                attempt + 1,
                max_retries + 1,
                jittered_delay,
                exc,
                extra={"event": LogEvent.EC2_RETRY, "attempt": attempt + 1, "delay": jittered_delay},
            )
            await asyncio.sleep(jittered_delay)

    raise RuntimeError("Unexpected state in with_retry")
