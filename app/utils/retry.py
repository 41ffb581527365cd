"""
Bounded retry with exponential backoff for outbound fetches.
"""
import logging
import random
import time
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def retry_call(
    func: Callable[..., Any],
    *args,
    retries: int = 2,
    base_delay: float = 0.2,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    jitter: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> Any:
    """
    Call func, retrying up to `retries` extra times on the given exceptions.

    The last exception is re-raised once attempts are exhausted.

    Args:
        func: Callable to invoke
        retries: Number of retries after the first attempt
        base_delay: Initial delay, doubled after each failure
        exceptions: Exception types that trigger a retry
        jitter: Random extra delay added to each wait
        sleep: Sleep function (injectable for tests)
    """
    attempt = 1
    delay = base_delay
    max_attempts = retries + 1

    while True:
        try:
            return func(*args, **kwargs)
        except exceptions as exc:
            if attempt >= max_attempts:
                raise
            logger.debug(
                f"Attempt {attempt}/{max_attempts} of {getattr(func, '__name__', func)} failed: {exc}"
            )
            if delay > 0:
                sleep(delay + random.uniform(0, jitter))
            attempt += 1
            delay *= 2
