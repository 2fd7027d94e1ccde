from __future__ import annotations

import pytest

from meeting_followup_agent.common.errors import ErrCode, LLMTimeoutError, ProviderError
from meeting_followup_agent.llm.base import LLMProvider, LLMResult
from meeting_followup_agent.llm.errors import (
    error_outcome,
    is_retryable_error,
    provider_error_from_response,
)
from meeting_followup_agent.llm.orchestrator import (
    ERR_BUDGET_EXHAUSTED,
    LLMGenerationFailed,
    LLMOrchestrator,
)


class _ScriptedProvider(LLMProvider):
    """Отдаёт заранее заданные исходы по очереди."""

    name = "scripted"

    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.timeouts: list[float] = []

    def generate(self, *, system: str, user: str, max_tokens: int, timeout_s: float) -> LLMResult:
        self.calls += 1
        self.timeouts.append(timeout_s)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _ok(text: str = "ok") -> LLMResult:
    return LLMResult(content=text, input_tokens=10, output_tokens=5, model="m")


def _transient() -> ProviderError:
    return provider_error_from_response(503, "overloaded")


def test_three_transient_failures_end_in_failure_with_backoff() -> None:
    provider = _ScriptedProvider([_transient(), _transient(), _transient(), _ok()])
    sleeps: list[float] = []
    orch = LLMOrchestrator(
        provider, max_attempts=3, base_delay_ms=1000, timeout_s=1.0, sleep=sleeps.append
    )

    with pytest.raises(LLMGenerationFailed) as exc:
        orch.generate(system="s", user="u")

    assert provider.calls == 3
    assert sleeps == [1.0, 2.0]
    assert exc.value.attempts == 3
    assert exc.value.message == "API error 503"


def test_success_on_second_attempt() -> None:
    provider = _ScriptedProvider([_transient(), _ok("draft")])
    sleeps: list[float] = []
    orch = LLMOrchestrator(
        provider, max_attempts=3, base_delay_ms=1000, timeout_s=1.0, sleep=sleeps.append
    )

    out = orch.generate(system="s", user="u")

    assert out.result.content == "draft"
    assert out.attempts == 2
    assert sleeps == [1.0]


def test_non_retryable_error_aborts_after_one_attempt() -> None:
    provider = _ScriptedProvider([provider_error_from_response(401, "invalid x-api-key"), _ok()])
    sleeps: list[float] = []
    orch = LLMOrchestrator(provider, max_attempts=3, timeout_s=1.0, sleep=sleeps.append)

    with pytest.raises(LLMGenerationFailed) as exc:
        orch.generate(system="s", user="u")

    assert provider.calls == 1
    assert sleeps == []
    assert exc.value.attempts == 1
    assert exc.value.retryable is False


def test_attempt_timeout_is_capped_by_remaining_budget() -> None:
    provider = _ScriptedProvider([_ok()])
    orch = LLMOrchestrator(provider, timeout_s=30.0, remaining_s=lambda: 12.5)

    orch.generate(system="s", user="u")

    assert provider.timeouts == [12.5]


def test_retry_is_skipped_when_budget_cannot_fit_it() -> None:
    provider = _ScriptedProvider([_transient(), _ok()])
    sleeps: list[float] = []
    orch = LLMOrchestrator(
        provider,
        max_attempts=3,
        base_delay_ms=1000,
        timeout_s=1.0,
        sleep=sleeps.append,
        remaining_s=lambda: 1.5,
    )

    with pytest.raises(LLMGenerationFailed) as exc:
        orch.generate(system="s", user="u")

    assert provider.calls == 1
    assert sleeps == []
    assert exc.value.message == "API error 503"


def test_no_attempt_when_budget_is_spent() -> None:
    provider = _ScriptedProvider([_ok()])
    orch = LLMOrchestrator(provider, timeout_s=1.0, remaining_s=lambda: 0.2)

    with pytest.raises(LLMGenerationFailed) as exc:
        orch.generate(system="s", user="u")

    assert provider.calls == 0
    assert exc.value.message == ERR_BUDGET_EXHAUSTED
    assert exc.value.attempts == 0


@pytest.mark.parametrize(
    ("status", "retryable"),
    [(400, False), (401, False), (403, False), (404, False), (422, False),
     (408, True), (429, True), (500, True), (529, True)],
)
def test_status_classification(status: int, retryable: bool) -> None:
    assert provider_error_from_response(status, "").retryable is retryable


def test_plain_exception_classification() -> None:
    assert is_retryable_error(RuntimeError("Connection reset by peer")) is True
    assert is_retryable_error(RuntimeError("invalid_api_key")) is False
    assert is_retryable_error(RuntimeError("something odd")) is True


def test_error_outcome_labels() -> None:
    assert error_outcome(LLMTimeoutError(1.0)) == "timeout"
    assert error_outcome(ProviderError(ErrCode.LLM_TIMEOUT, "t")) == "timeout"
    assert error_outcome(_transient()) == "retryable_error"
    assert error_outcome(provider_error_from_response(401, "")) == "fatal_error"
