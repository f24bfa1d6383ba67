from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _present(value: object) -> bool:
    return value is not None


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    attempts: int = 4,
    base_delay: float = 0.05,
    accept: Callable[[T], bool] = _present,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "read",
) -> T:
    """Call ``fn`` until ``accept`` likes its result, doubling the delay between calls.

    The store is eventually consistent, so a read right after a write may miss it.
    Exceptions from ``fn`` propagate immediately. After the last attempt the final
    result is returned whether or not it was accepted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    delay = base_delay
    result = fn()
    for attempt in range(1, attempts):
        if accept(result):
            return result
        logger.debug("%s not visible yet attempt=%s/%s retry_in=%.3fs", label, attempt, attempts, delay)
        sleep(delay)
        delay *= 2
        result = fn()

    if not accept(result):
        logger.warning("%s still not visible after %s attempts", label, attempts)
    return result
