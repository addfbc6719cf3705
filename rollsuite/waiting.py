"""Polling primitives shared by every detector in the suite"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

import backoff

from rollsuite.errors import DeadlineExceeded, ScenarioCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a bounded wait, `value` is the last observed value even on timeout"""

    value: T
    success: bool
    elapsed: float

    def __bool__(self):
        return self.success

    def unwrap(self, description: str, expected=None) -> T:
        """Returns the value or raises DeadlineExceeded"""
        if not self.success:
            raise DeadlineExceeded(
                f"Timed out after {self.elapsed:.0f}s waiting for {description}",
                expected=expected,
                observed=self.value,
            )
        return self.value


def check_cancelled(cancel: Optional[threading.Event], description: str):
    """Raises ScenarioCancelled if the event is set"""
    if cancel is not None and cancel.is_set():
        raise ScenarioCancelled(f"Cancelled while waiting for {description}")


def wait_until(
    fetch: Callable[[], T],
    success: Callable[[T], bool] = bool,
    *,
    timeout: float,
    interval: float,
    description: str = "condition",
    cancel: Optional[threading.Event] = None,
) -> Outcome[T]:
    """
    Polls `fetch` every `interval` seconds until `success(value)` holds or `timeout` elapses.
    Exceptions raised by `fetch` are not swallowed.
    """
    start = time.monotonic()

    @backoff.on_predicate(
        backoff.constant, lambda value: not success(value), interval=interval, max_time=timeout, jitter=None
    )
    def _poll():
        check_cancelled(cancel, description)
        return fetch()

    value = _poll()
    elapsed = time.monotonic() - start
    passed = success(value)
    if not passed:
        logger.info("Gave up waiting for %s after %.0fs", description, elapsed)
    return Outcome(value, passed, elapsed)


def observe(
    check: Callable[[], None],
    *,
    window: float,
    interval: float,
    description: str = "observation",
    cancel: Optional[threading.Event] = None,
):
    """Runs `check` on every poll for the whole window, `check` raises to signal a deviation"""
    deadline = time.monotonic() + window
    while True:
        check_cancelled(cancel, description)
        check()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return
        time.sleep(min(interval, remaining))
