"""Bounded retry helper for provider calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from context_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

BackoffPolicy = Callable[[int], float]


def no_backoff(attempt: int) -> float:
    """Retry immediately."""
    return 0.0


def exponential_backoff(initial: float, factor: float = 2.0) -> BackoffPolicy:
    """
    Build a backoff policy: initial * factor ** attempt.

    Args:
        initial: Delay in seconds after the first failed attempt
        factor: Multiplier applied for each further attempt

    Returns:
        Callable mapping the zero-based failed attempt to a delay
    """

    def _delay(attempt: int) -> float:
        return initial * (factor**attempt)

    return _delay


async def bounded_retry(
    attempt_fn: Callable[[int], Awaitable[T]],
    max_attempts: int,
    backoff: BackoffPolicy = no_backoff,
    retry_if: Callable[[Exception], bool] | None = None,
    accept: Callable[[T], bool] | None = None,
    label: str = "operation",
) -> T:
    """
    Run attempt_fn up to max_attempts times.

    attempt_fn receives the zero-based attempt number. An attempt is retried
    when it raises an exception that retry_if allows (all exceptions by
    default), or when it returns a value that accept rejects.

    Returns:
        The first accepted result, or the last result if every result was
        rejected.

    Raises:
        The last exception if the final attempt raised, or the first
        exception that retry_if refuses.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        is_last = attempt == max_attempts - 1
        try:
            result = await attempt_fn(attempt)
        except Exception as e:
            if is_last or (retry_if is not None and not retry_if(e)):
                raise
            delay = backoff(attempt)
            logger.warning(
                f"{label} attempt {attempt + 1}/{max_attempts} failed: {e}; "
                f"retrying in {delay:.2f}s"
            )
            if delay > 0:
                await asyncio.sleep(delay)
            continue

        if accept is None or accept(result) or is_last:
            return result

        logger.warning(f"{label} attempt {attempt + 1}/{max_attempts} rejected, retrying")
        delay = backoff(attempt)
        if delay > 0:
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
