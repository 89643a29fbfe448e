import logging
import time
from typing import Callable, TypeVar

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retrying after `attempt` (1-based) failed."""
    return base_delay * (2 ** (attempt - 1))


def with_retry(
    fn: Callable[[], T],
    *,
    attempts: int | None = None,
    base_delay: float | None = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call `fn` up to `attempts` times, sleeping base_delay * 2**(n-1) between tries.

    Only exceptions in `retry_on` are retried; anything else propagates at once.
    The last error is re-raised when attempts run out.
    """
    attempts = attempts if attempts is not None else settings.RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.RETRY_BASE_DELAY
    attempts = max(1, int(attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                logger.error("%s failed after %s attempts: %s", label, attempts, e)
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning("%s attempt %s/%s failed: %s; retrying in %.2fs", label, attempt, attempts, e, delay)
            sleep(delay)
    raise AssertionError("unreachable")
