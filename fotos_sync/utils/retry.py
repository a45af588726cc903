"""Retry helper shared by the album and photo sync paths."""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    fn: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds, doubling the delay between attempts.

    Args:
        fn: Zero-argument callable to invoke
        attempts: Maximum number of calls
        base_delay: Delay before the second attempt, in seconds
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function

    Returns:
        Whatever ``fn`` returns

    Raises:
        The last exception raised by ``fn`` once attempts are exhausted
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(attempts):
        try:
            return fn()
        except retry_on as e:
            logger.warning("Attempt %d failed: %s", attempt + 1, e)
            if attempt == attempts - 1:
                raise
            sleep(base_delay * (2 ** attempt))

    raise AssertionError("unreachable")
