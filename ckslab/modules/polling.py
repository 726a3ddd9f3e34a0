"""Bounded polling built on tenacity."""
import logging
import time
from typing import Callable, Optional

from tenacity import RetryCallState, Retrying, retry_if_result, stop_after_attempt, wait_fixed

logger = logging.getLogger("ckslab.polling")


def attempts_for(timeout: float, interval: float) -> int:
    """Number of checks that fit in ``timeout`` seconds at ``interval`` spacing."""
    if interval <= 0:
        return max(1, int(timeout))
    return max(1, int(timeout // interval) + 1)


def poll(
    check: Callable[[], bool],
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    on_wait: Optional[Callable[[int], None]] = None,
) -> bool:
    """Call ``check`` until it returns True or ``attempts`` run out.

    Args:
        check: Condition to test; exceptions it raises are propagated
        attempts: Maximum number of calls to ``check``
        interval: Fixed delay between calls in seconds
        sleep: Sleep function, replaceable in tests
        on_wait: Called with the attempt number before each sleep

    Returns:
        bool: True if the condition was met, False on exhaustion
    """
    def before_sleep(state: RetryCallState) -> None:
        if on_wait is not None:
            on_wait(state.attempt_number)

    retryer = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda done: not done),
        retry_error_callback=lambda state: False,
        before_sleep=before_sleep,
        sleep=sleep,
    )
    return bool(retryer(check))
