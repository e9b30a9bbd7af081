"""Fixed-interval, bounded polling for remote jobs (workflow runs, exports)."""
from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from abb_automation.errors import PollTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, T], None] | None = None,
    what: str = "condition",
) -> T:
    """Sleep ``interval`` seconds, call ``fetch``, repeat until ``is_done``.

    Args:
        fetch: Reads the current remote state. Errors it raises propagate.
        is_done: Returns True for a terminal state.
        interval: Seconds to wait before each fetch.
        max_attempts: Upper bound on the number of fetches.
        sleep: Injected for tests.
        on_attempt: Progress callback ``(attempt, value)``.

    Returns:
        The first value accepted by ``is_done``.

    Raises:
        PollTimeoutError: ``max_attempts`` fetches without a terminal state.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last: T | None = None
    for attempt in range(1, max_attempts + 1):
        sleep(interval)
        last = fetch()
        if on_attempt is not None:
            on_attempt(attempt, last)
        if is_done(last):
            logger.debug("%s reached after %d attempt(s)", what, attempt)
            return last
    raise PollTimeoutError(max_attempts, last, what=what)
