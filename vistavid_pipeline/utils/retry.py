"""
Bounded waiting and retrying.

Two shapes of "try again later" show up in the pipeline:

- the raw object may not be visible yet when the record is created, which is
  handled by polling a predicate with a fixed delay (`wait_until`);
- the classifier may still be warming up and say how long to wait, which is
  handled by retrying a call while it raises `NotReady` (`call_with_retry`).

Both take an injectable `sleep` so callers and tests control the clock.
"""
import time
from typing import Callable, Optional, TypeVar

from loguru import logger

from ..domain.exceptions import RetriesExhaustedException

T = TypeVar("T")


class NotReady(Exception):
    """
    Raised by a retried callable to ask for another attempt.

    Args:
        message: Why the attempt did not complete.
        retry_after: Suggested wait in seconds, or None for the caller's default.
    """

    def __init__(self, message: str = "not ready", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def wait_until(
    predicate: Callable[[], bool],
    attempts: int,
    delay: float,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Polls `predicate` until it returns True or `attempts` checks have been made.

    An exception raised by the predicate is logged and counts as "not yet".
    No sleep follows the last check.

    Returns:
        True if the predicate succeeded, False if every attempt failed.
    """
    for attempt in range(1, attempts + 1):
        try:
            if predicate():
                return True
            logger.info(f"{description} not ready, attempt {attempt} of {attempts}")
        except Exception as e:
            logger.error(f"Error while checking {description} (attempt {attempt} of {attempts}): {e}")
        if attempt < attempts:
            sleep(delay)
    return False


def call_with_retry(
    fn: Callable[[], T],
    max_attempts: int,
    default_delay: float,
    description: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Calls `fn` until it returns, retrying while it raises `NotReady`.

    Between attempts it sleeps for the delay suggested by the `NotReady`
    exception, or `default_delay` when none was given. Any other exception
    propagates immediately.

    Raises:
        RetriesExhaustedException: If all `max_attempts` calls raised `NotReady`.
    """
    last: Optional[NotReady] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except NotReady as e:
            last = e
            if attempt == max_attempts:
                break
            wait = e.retry_after if e.retry_after is not None else default_delay
            logger.info(
                f"{description} not ready ({e}), waiting {wait:.1f}s before attempt {attempt + 1}/{max_attempts}"
            )
            sleep(wait)

    raise RetriesExhaustedException(
        f"{description} still not ready after {max_attempts} attempts: {last}",
        attempts=max_attempts,
    )
