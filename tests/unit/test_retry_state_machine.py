from __future__ import annotations

import pytest

from core.services.retry_state_machine import RetryState, RetryStateMachine


def test_starts_idle():
    sm = RetryStateMachine()
    assert sm.state is RetryState.IDLE
    assert sm.attempt == 0
    assert not sm.is_terminal


def test_success_on_first_attempt():
    sm = RetryStateMachine()
    assert sm.begin() == 1
    assert sm.state is RetryState.ATTEMPTING
    sm.record_success()
    assert sm.state is RetryState.SUCCEEDED
    assert sm.is_terminal


def test_transient_failures_back_off_exponentially_then_exhaust():
    sm = RetryStateMachine(base_s=0.1, cap_s=5.0, max_attempts=5)
    delays = []
    while True:
        sm.begin()
        delay = sm.record_failure(transient=True)
        if delay is None:
            break
        delays.append(delay)

    assert delays == pytest.approx([0.1, 0.2, 0.4, 0.8])
    assert sm.state is RetryState.EXHAUSTED
    assert sm.attempt == 5


def test_delay_is_capped():
    sm = RetryStateMachine(base_s=0.1, cap_s=5.0, max_attempts=20)
    assert sm.delay_for(6) == pytest.approx(3.2)
    assert sm.delay_for(7) == pytest.approx(5.0)
    assert sm.delay_for(15) == pytest.approx(5.0)


def test_permanent_failure_aborts_without_delay():
    sm = RetryStateMachine()
    sm.begin()
    assert sm.record_failure(transient=False) is None
    assert sm.state is RetryState.ABORTED
    assert sm.attempt == 1


def test_recovers_after_transient_failure():
    sm = RetryStateMachine()
    sm.begin()
    assert sm.record_failure(transient=True) == pytest.approx(0.1)
    assert sm.begin() == 2
    sm.record_success()
    assert sm.state is RetryState.SUCCEEDED


def test_terminal_machine_refuses_new_attempts():
    sm = RetryStateMachine(max_attempts=1)
    sm.begin()
    sm.record_failure(transient=True)
    assert sm.state is RetryState.EXHAUSTED
    with pytest.raises(RuntimeError):
        sm.begin()


def test_outcome_without_attempt_is_rejected():
    sm = RetryStateMachine()
    with pytest.raises(RuntimeError):
        sm.record_success()
    with pytest.raises(RuntimeError):
        sm.record_failure(transient=True)


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryStateMachine(max_attempts=0)
