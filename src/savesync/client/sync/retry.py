"""Retry logic with exponential backoff for remote calls.

This module provides:
- retry_with_backoff: Await a coroutine factory with exponential backoff retry
- NETWORK_EXCEPTIONS: Exceptions that indicate connectivity issues
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Network-related exceptions that indicate connectivity issues
NETWORK_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = NETWORK_EXCEPTIONS,
    description: str = "remote call",
) -> T:
    """Await a coroutine factory with exponential backoff retry.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.
        description: What is being retried, for log messages.

    Returns:
        Result of the awaitable.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                if max_retries:
                    logger.error(f"All {max_retries} retries failed for {description}: {e}")
                raise

            logger.warning(
                f"{description} attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                f"Retrying in {backoff:.1f}s..."
            )
            await asyncio.sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")
