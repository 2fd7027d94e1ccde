from __future__ import annotations

import threading
import time

import pytest

from meeting_followup_agent.common.errors import LLMTimeoutError
from meeting_followup_agent.llm.bounded import bounded_generate, call_bounded
from meeting_followup_agent.llm.mock import MockLLMProvider


def test_returns_result_when_fast() -> None:
    assert call_bounded(lambda: 42, timeout_s=1.0) == 42


def test_propagates_exception_from_call() -> None:
    def _boom() -> None:
        raise ValueError("bad input")

    with pytest.raises(ValueError, match="bad input"):
        call_bounded(_boom, timeout_s=1.0)


def test_hung_call_times_out_on_deadline() -> None:
    never = threading.Event()

    started = time.monotonic()
    with pytest.raises(LLMTimeoutError) as exc:
        call_bounded(lambda: never.wait(10), timeout_s=0.2, name="hung")
    elapsed = time.monotonic() - started

    assert 0.2 <= elapsed < 0.7
    assert exc.value.retryable is True
    assert exc.value.details["name"] == "hung"
    never.set()


def test_late_result_is_discarded() -> None:
    release = threading.Event()
    results: list[str] = []

    def _slow() -> str:
        release.wait(5)
        results.append("late")
        return "late"

    with pytest.raises(LLMTimeoutError):
        call_bounded(_slow, timeout_s=0.05)
    release.set()
    time.sleep(0.05)
    # вызов завершился в фоне, но его результат никуда не вернулся
    assert results == ["late"]


def test_bounded_generate_uses_provider() -> None:
    provider = MockLLMProvider(content="hello")
    res = bounded_generate(provider, "sys", "user", 100, 1.0)
    assert res.content == "hello"
    assert provider.calls == 1
