"""Retry logic for failed operations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from docchat.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    settings: Settings,
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_multiplier: Optional[float] = None,
    exceptions: tuple = (Exception,),
    give_up_on: tuple = (),
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry.
        settings: Application settings providing the defaults.
        max_retries: Number of retries after the first attempt.
        delay: Initial delay in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        exceptions: Tuple of exceptions to catch and retry.
        give_up_on: Exceptions that are re-raised immediately, even if they
            also match ``exceptions``.

    Returns:
        Result of the function call.

    Raises:
        Last exception if all retries fail.
    """
    if max_retries is None:
        max_retries = settings.max_retries
    if delay is None:
        delay = settings.retry_delay_seconds
    if backoff_multiplier is None:
        backoff_multiplier = settings.retry_backoff_multiplier

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except give_up_on:
            raise
        except exceptions as e:
            if attempt >= max_retries:
                if max_retries:
                    logger.error(
                        f"All {max_retries + 1} attempts failed. Last error: {str(e)}")
                raise
            wait_time = delay * (backoff_multiplier ** attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{max_retries + 1} failed: {str(e)}. "
                f"Retrying in {wait_time:.2f}s..."
            )
            await asyncio.sleep(wait_time)

    raise RuntimeError("retry loop exited without a result")
