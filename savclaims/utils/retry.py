"""Retry with exponential backoff for outbound HTTP operations."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import extract_status_code, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000


def backoff_delay_ms(attempt: int, base_delay_ms: float) -> float:
    """
    Delay to wait after a failed attempt.

    Args:
        attempt: 1-indexed number of the attempt that just failed
        base_delay_ms: Base delay in milliseconds

    Returns:
        ``base_delay_ms * 2 ** (attempt - 1)``
    """
    return base_delay_ms * (2 ** (attempt - 1))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_ms: float = DEFAULT_BASE_DELAY_MS,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    description: str = "operation"
) -> T:
    """
    Run an async operation, retrying transient failures with exponential backoff.

    Errors carrying an HTTP status in [400, 500), and SavErrors flagged as
    non-recoverable, are re-raised immediately. Any other error is retried
    until ``max_attempts`` attempts have been made. The wait before attempt
    k+1 is ``base_delay_ms * 2 ** (k - 1)``: with the defaults, 1000 ms then
    2000 ms. No wait happens after the final attempt.

    Args:
        operation: Zero-argument coroutine function to invoke
        max_attempts: Total number of attempts (>= 1)
        base_delay_ms: Base backoff delay in milliseconds (>= 0)
        sleep: Coroutine used to wait, takes seconds (default: asyncio.sleep)
        description: Label used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        ValueError: If max_attempts < 1 or base_delay_ms < 0
        Exception: The terminal error, or the last error once attempts run out
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
    if base_delay_ms < 0:
        raise ValueError(f"base_delay_ms must be >= 0, got {base_delay_ms}")

    sleep = sleep or asyncio.sleep

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"Running {description} (attempt {attempt}/{max_attempts})")
            return await operation()

        except Exception as e:
            if not is_retryable(e):
                logger.error(
                    f"{description} failed with non-retryable error "
                    f"(status={extract_status_code(e)}): {str(e)}"
                )
                raise

            if attempt == max_attempts:
                logger.error(
                    f"{description} failed after {attempt} attempts: {str(e)}"
                )
                raise

            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} of {description} failed, "
                f"retrying in {delay_ms:.0f}ms: {str(e)}"
            )
            await sleep(delay_ms / 1000)

    # Unreachable: the loop either returns or raises on the final attempt
    raise RuntimeError(f"{description} exhausted {max_attempts} attempts")
