# Retry utilities - Helpers for store transactions that may hit transient failures.

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from caronas.config import settings
from caronas.utils.exceptions import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    label: str = "transaction",
) -> T:
    """
    Run an async operation, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Maximum number of attempts (defaults to settings)
        base_delay: Delay before the second attempt, doubled each time
        label: Description for logging

    Returns:
        The operation's result

    Raises:
        The last TransientError once all attempts are exhausted. Any other
        exception propagates immediately.
    """
    if max_attempts is None:
        max_attempts = settings.transaction_max_attempts
    if base_delay is None:
        base_delay = settings.transaction_retry_base_delay_seconds

    for attempt in range(max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info(f"{label} succeeded on attempt {attempt + 1}")
            return result
        except TransientError as e:
            if attempt == max_attempts - 1:
                logger.error(f"{label} failed after {max_attempts} attempts: {e.code}")
                raise
            logger.warning(
                f"{label} {e.code}, attempt {attempt + 1}/{max_attempts}"
            )
            await asyncio.sleep(base_delay * (2 ** attempt))

    # max_attempts < 1
    raise ValueError("max_attempts must be at least 1")
