import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .models import RetryOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried operation. 'error' holds the last failure, if any."""

    succeeded: bool
    value: Optional[T]
    attempts: int
    error: Optional[BaseException] = None


async def pause(delay_ms: int) -> None:
    await asyncio.sleep(delay_ms / 1000)


async def retry(
    operation: Callable[[], Awaitable[T]],
    retry_options: RetryOptions,
    description: str,
) -> RetryOutcome[T]:
    """
    Run 'operation' up to retry_options.max_attempts times.

    An attempt fails when it raises or returns exactly False (an empty list of
    links is a valid result). Between failed attempts we pause for delay_ms,
    never after the last one. Failures are logged, never raised: the caller
    decides what an exhausted outcome means.
    """
    max_attempts = retry_options.max_attempts
    delay_ms = retry_options.delay_ms or 0
    last_error: Optional[BaseException] = None
    reason = "operation reported failure"

    for attempt in range(1, max_attempts + 1):
        try:
            value: Any = await operation()
        except Exception as e:
            last_error = e
            reason = str(e) or type(e).__name__
        else:
            if value is not False:
                return RetryOutcome(succeeded=True, value=value, attempts=attempt)
            last_error = None
            reason = "operation reported failure"

        if attempt < max_attempts:
            logger.warning(
                f"Failed to {description} (attempt {attempt}/{max_attempts}): {reason}. Retrying."
            )
            if delay_ms > 0:
                await pause(delay_ms)

    logger.error(
        f"Failed to {description} after {max_attempts} attempt(s). Reason: {reason}"
    )
    return RetryOutcome(
        succeeded=False, value=None, attempts=max_attempts, error=last_error
    )
