import threading

import pytest

from deploy_orchestrator.errors import ControlPlaneError, OperationCancelled
from deploy_orchestrator.polling import PollPolicy, PollStatus, poll_until, retry_waiter


def sequence(*values):
    """fetch() returning/raising the given values in order, repeating the last."""
    items = list(values)

    def fetch():
        item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, BaseException):
            raise item
        return item
    return fetch


def throttled():
    return ControlPlaneError("DescribeTasks", "Rate exceeded", code="ThrottlingException")


def test_returns_immediately_when_condition_holds(clock):
    policy = PollPolicy(interval=5, max_wait=60)
    result = poll_until(sequence("STOPPED"), lambda v: v == "STOPPED", policy,
                        clock=clock, sleep=clock.sleep)

    assert result.status == PollStatus.DONE
    assert result.value == "STOPPED"
    assert result.attempts == 1
    assert clock.sleeps == []


def test_sleeps_interval_between_attempts(clock):
    policy = PollPolicy(interval=5, max_wait=60)
    result = poll_until(sequence("PENDING", "RUNNING", "STOPPED"), lambda v: v == "STOPPED",
                        policy, clock=clock, sleep=clock.sleep)

    assert result.done
    assert result.attempts == 3
    assert clock.sleeps == [5, 5]
    assert result.elapsed == 10


def test_times_out_without_sleeping_past_deadline(clock):
    policy = PollPolicy(interval=3, max_wait=10)
    result = poll_until(sequence("PENDING"), lambda v: v == "STOPPED", policy,
                        clock=clock, sleep=clock.sleep)

    assert result.status == PollStatus.TIMED_OUT
    assert result.value == "PENDING"
    assert clock.sleeps == [3, 3, 3, 1]
    assert all(s > 0 for s in clock.sleeps)
    assert clock.now == 10


def test_control_plane_errors_are_retried_with_backoff(clock):
    policy = PollPolicy(interval=5, max_wait=60, max_consecutive_errors=3,
                        retry_delay=1, backoff=2)
    result = poll_until(sequence(throttled(), throttled(), "STOPPED"), lambda v: v == "STOPPED",
                        policy, clock=clock, sleep=clock.sleep)

    assert result.done
    assert clock.sleeps == [1, 2]


def test_backoff_is_capped(clock):
    policy = PollPolicy(interval=5, max_wait=600, max_consecutive_errors=10,
                        retry_delay=4, backoff=3, max_retry_delay=10)
    fetch = sequence(throttled(), throttled(), throttled(), "STOPPED")
    poll_until(fetch, lambda v: v == "STOPPED", policy, clock=clock, sleep=clock.sleep)

    assert clock.sleeps == [4, 10, 10]


def test_error_budget_exhausted(clock):
    policy = PollPolicy(interval=5, max_wait=60, max_consecutive_errors=3,
                        retry_delay=1, backoff=2)
    result = poll_until(sequence(throttled()), lambda v: True, policy,
                        clock=clock, sleep=clock.sleep)

    assert result.status == PollStatus.ERRORS_EXHAUSTED
    assert result.last_error.code == "ThrottlingException"
    assert result.attempts == 3
    assert clock.sleeps == [1, 2]


def test_error_count_resets_after_success(clock):
    policy = PollPolicy(interval=5, max_wait=600, max_consecutive_errors=2,
                        retry_delay=1, backoff=2)
    fetch = sequence(throttled(), "PENDING", throttled(), "PENDING", "STOPPED")
    result = poll_until(fetch, lambda v: v == "STOPPED", policy, clock=clock, sleep=clock.sleep)

    assert result.done
    assert clock.sleeps == [1, 5, 1, 5]


def test_unexpected_exceptions_propagate(clock):
    policy = PollPolicy(interval=5, max_wait=60)
    with pytest.raises(ValueError):
        poll_until(sequence(ValueError("bad response")), lambda v: True, policy,
                   clock=clock, sleep=clock.sleep)


def test_cancelled_before_first_attempt(clock):
    cancel = threading.Event()
    cancel.set()
    calls = []
    result = poll_until(lambda: calls.append(1), lambda v: False, PollPolicy(),
                        cancel_event=cancel, clock=clock, sleep=clock.sleep)

    assert result.cancelled
    assert calls == []


def test_cancelled_while_waiting(clock):
    cancel = threading.Event()

    def sleep(seconds):
        clock.sleep(seconds)
        cancel.set()

    result = poll_until(sequence("PENDING"), lambda v: False, PollPolicy(interval=5, max_wait=60),
                        cancel_event=cancel, clock=clock, sleep=sleep)

    assert result.status == PollStatus.CANCELLED
    assert result.attempts == 1
    assert result.value == "PENDING"


def test_keyboard_interrupt_cancels(clock):
    result = poll_until(sequence(KeyboardInterrupt()), lambda v: False, PollPolicy(),
                        clock=clock, sleep=clock.sleep)

    assert result.cancelled


def test_waits_on_cancel_event_by_default():
    cancel = threading.Event()
    cancel.set()
    policy = PollPolicy(interval=30, max_wait=60)
    # Event already set: no real sleeping happens
    result = poll_until(sequence("PENDING"), lambda v: False, policy, cancel_event=cancel)

    assert result.cancelled


def test_retry_waiter_raises_once_cancelled(clock):
    cancel = threading.Event()
    wait = retry_waiter(cancel, clock.sleep)

    wait(2)
    cancel.set()
    with pytest.raises(OperationCancelled):
        wait(4)
    assert clock.sleeps == [2, 4]


def test_retry_waiter_returns_early_on_cancel_event():
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        # Would block for an hour if it ignored the event
        retry_waiter(cancel)(3600)
