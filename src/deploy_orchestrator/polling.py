"""Polling with bounded waits, shared by the migration and rollout phases.

``poll_until`` repeatedly fetches a snapshot from the control plane until a
predicate holds, the max-wait elapses, too many consecutive control-plane
errors occur, or the run is cancelled. It never spins: every iteration that
does not finish sleeps either the poll interval or the error backoff delay.
"""
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from deploy_orchestrator.errors import ControlPlaneError, OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar('T')


class PollStatus(str, Enum):
    DONE = "done"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERRORS_EXHAUSTED = "errors_exhausted"


@dataclass
class PollResult(Generic[T]):
    """How a polling loop ended and the last snapshot it saw."""
    status: PollStatus
    value: Optional[T] = None
    attempts: int = 0
    elapsed: float = 0.0
    last_error: Optional[ControlPlaneError] = None

    @property
    def done(self) -> bool:
        return self.status == PollStatus.DONE

    @property
    def cancelled(self) -> bool:
        return self.status == PollStatus.CANCELLED


@dataclass
class PollPolicy:
    """Intervals and limits for a polling loop."""
    interval: float = 5.0
    max_wait: float = 600.0
    max_consecutive_errors: int = 5
    retry_delay: float = 2.0
    backoff: float = 2.0
    max_retry_delay: float = 30.0


def waiter(cancel_event: Optional[threading.Event] = None,
           sleep: Optional[Callable[[float], None]] = None) -> Callable[[float], None]:
    """Wait function that returns early once ``cancel_event`` is set.

    An injected ``sleep`` takes precedence; without a cancel event this is
    plain ``time.sleep``.
    """
    def wait(seconds: float) -> None:
        if sleep is not None:
            sleep(seconds)
        elif cancel_event is not None:
            cancel_event.wait(seconds)
        else:
            time.sleep(seconds)
    return wait


def retry_waiter(cancel_event: Optional[threading.Event] = None,
                 sleep: Optional[Callable[[float], None]] = None) -> Callable[[float], None]:
    """Like ``waiter`` but raises OperationCancelled if cancelled during the wait.

    Used between retries outside a polling loop, where there is no loop
    condition to check.
    """
    wait = waiter(cancel_event, sleep)

    def wait_or_raise(seconds: float) -> None:
        wait(seconds)
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled()
    return wait_or_raise


def poll_until(fetch: Callable[[], T],
               is_done: Callable[[T], bool],
               policy: PollPolicy,
               *,
               description: str = "condition",
               cancel_event: Optional[threading.Event] = None,
               clock: Callable[[], float] = time.monotonic,
               sleep: Optional[Callable[[float], None]] = None) -> PollResult[T]:
    """Poll ``fetch`` until ``is_done`` holds for its result.

    Args:
        fetch: Returns a fresh snapshot; may raise ControlPlaneError
        is_done: Predicate over the snapshot
        policy: Interval, max-wait and error budget
        description: Used in log messages
        cancel_event: Set by the caller to abandon the loop
        clock: Monotonic time source
        sleep: Wait function; defaults to waiting on ``cancel_event``
            (or ``time.sleep`` without one)

    Returns:
        PollResult describing why the loop ended
    """
    start = clock()
    deadline = start + policy.max_wait
    consecutive_errors = 0
    error_delay = policy.retry_delay
    attempts = 0
    last_value = None
    last_error = None

    def result(status: PollStatus) -> PollResult:
        return PollResult(status=status, value=last_value, attempts=attempts,
                          elapsed=clock() - start, last_error=last_error)

    def is_cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    wait = waiter(cancel_event, sleep)

    try:
        while True:
            if is_cancelled():
                logger.warning(f"Stopped waiting for {description}: cancelled")
                return result(PollStatus.CANCELLED)

            attempts += 1
            try:
                value = fetch()
            except ControlPlaneError as e:
                consecutive_errors += 1
                last_error = e
                if consecutive_errors >= policy.max_consecutive_errors:
                    logger.error(
                        f"Giving up on {description} after {consecutive_errors} "
                        f"consecutive control-plane errors: {e}"
                    )
                    return result(PollStatus.ERRORS_EXHAUSTED)
                wait_for = min(error_delay, policy.max_retry_delay)
                error_delay *= policy.backoff
                logger.warning(
                    f"Control-plane error while waiting for {description} "
                    f"({consecutive_errors}/{policy.max_consecutive_errors}): {e}. "
                    f"Retrying in {wait_for:.1f}s"
                )
            else:
                consecutive_errors = 0
                error_delay = policy.retry_delay
                last_value = value
                if is_done(value):
                    return result(PollStatus.DONE)
                wait_for = policy.interval

            remaining = deadline - clock()
            if remaining <= 0:
                logger.error(f"Timed out waiting for {description} after {policy.max_wait:.0f}s")
                return result(PollStatus.TIMED_OUT)

            wait(min(wait_for, remaining))
    except KeyboardInterrupt:
        logger.warning(f"Interrupted while waiting for {description}")
        return result(PollStatus.CANCELLED)
