import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from semiologix.config import logger, MAX_RETRIES, INITIAL_RETRY_DELAY, RETRY_JITTER

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "resource exhausted", "rate limit")


def is_rate_limit_error(error: BaseException) -> bool:
    """Classify an error as a transient rate limit from its text."""
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def backoff_delay(attempt: int, initial_delay: float, jitter: float) -> float:
    # attempt starts at 1
    return initial_delay * 2 ** (attempt - 1) + random.uniform(0, jitter)


async def call_with_retry(
    api_call: Callable[[], Awaitable[T]],
    max_retries: int = MAX_RETRIES,
    initial_delay: float = INITIAL_RETRY_DELAY,
    jitter: float = RETRY_JITTER,
) -> T:
    """
    Await api_call, retrying on rate limit errors with exponential backoff.

    Any other error propagates on the first failure. When the retry budget is
    spent the last rate limit error propagates.

    Args:
        api_call: Zero-argument coroutine function issuing the request
        max_retries: Maximum number of retries (total calls = max_retries + 1)
        initial_delay: Delay in seconds before the first retry
        jitter: Upper bound in seconds of the random jitter

    Returns:
        Whatever api_call returns
    """
    retries = 0
    while True:
        try:
            return await api_call()
        except Exception as e:
            rate_limited = is_rate_limit_error(e)
            if rate_limited and retries < max_retries:
                retries += 1
                delay = backoff_delay(retries, initial_delay, jitter)
                logger.warning(f"Rate limit error. Retrying in {delay:.2f}s... (Attempt {retries}/{max_retries})")
                await asyncio.sleep(delay)
                continue
            if rate_limited:
                logger.error(f"API call failed after {retries} retries due to persistent rate limiting.")
            else:
                logger.error(f"API call failed due to a non-retriable error: {e}")
            raise
