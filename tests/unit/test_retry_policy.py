from __future__ import annotations

import pytest

from meeting_followup_agent.common.run_context import PipelineRun
from meeting_followup_agent.domain.retry import (
    RetryPhase,
    RetryState,
    backoff_delay,
    next_attempt_fits,
)


def test_backoff_delay_doubles() -> None:
    assert backoff_delay(0) == 0.0
    assert backoff_delay(1) == 1.0
    assert backoff_delay(2) == 2.0
    assert backoff_delay(3) == 4.0
    assert backoff_delay(2, base_ms=500) == 1.0


def test_three_transient_failures_exhaust_the_state() -> None:
    state = RetryState(max_attempts=3, base_delay_ms=1000)
    delays = []
    while not state.done:
        state.start_attempt()
        delays.append(state.fail("timeout", retryable=True))

    assert state.attempt == 3
    assert state.phase == RetryPhase.exhausted_failed
    assert delays == [1.0, 2.0, None]
    with pytest.raises(RuntimeError):
        state.start_attempt()


def test_non_retryable_failure_stops_immediately() -> None:
    state = RetryState(max_attempts=3)
    state.start_attempt()
    assert state.fail("401", retryable=False) is None
    assert state.done is True
    assert state.attempt == 1


def test_success_after_retry() -> None:
    state = RetryState(max_attempts=3)
    state.start_attempt()
    state.fail("429", retryable=True)
    state.start_attempt()
    state.succeed()
    assert state.phase == RetryPhase.succeeded
    assert state.last_error is None
    assert state.attempt == 2


def test_succeed_outside_attempt_is_an_error() -> None:
    with pytest.raises(RuntimeError):
        RetryState().succeed()


def test_give_up_ends_retries_early() -> None:
    state = RetryState(max_attempts=3)
    state.start_attempt()
    assert state.fail("503", retryable=True) == 1.0

    state.give_up()

    assert state.phase == RetryPhase.exhausted_failed
    assert state.last_error == "503"
    with pytest.raises(RuntimeError):
        state.start_attempt()


def test_next_attempt_fits_budget() -> None:
    assert next_attempt_fits(1.0, 10.0) is True
    assert next_attempt_fits(2.0, 2.5) is False
    assert next_attempt_fits(0.5, 2.0, min_attempt_s=1.5) is True


def test_run_budget_caps_timeouts() -> None:
    run = PipelineRun(budget_s=5.0)
    assert 0.0 < run.remaining_s() <= 5.0
    assert run.cap_timeout(30.0) <= 5.0
    assert run.cap_timeout(0.5) == 0.5

    spent = PipelineRun(budget_s=0.0)
    assert spent.remaining_s() == 0.0
    assert spent.cap_timeout(30.0) == 0.0
