from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import AppError, ErrCode, ProviderError
from meeting_followup_agent.common.logging import get_llm_logger
from meeting_followup_agent.common.metrics import LLM_CALLS_TOTAL
from meeting_followup_agent.domain.retry import MIN_ATTEMPT_SEC, RetryState, next_attempt_fits

from .base import LLMProvider, LLMResult
from .bounded import bounded_generate
from .errors import error_outcome, is_retryable_error

log = get_llm_logger()


def _error_text(err: BaseException) -> str:
    return err.message if isinstance(err, AppError) else (str(err) or err.__class__.__name__)


@dataclass
class OrchestratedResult:
    result: LLMResult
    attempts: int


ERR_BUDGET_EXHAUSTED = "pipeline budget exhausted"


class LLMGenerationFailed(ProviderError):
    """Все попытки исчерпаны (или ошибка не ретраится)."""

    def __init__(self, message: str, *, attempts: int, retryable: bool) -> None:
        super().__init__(
            ErrCode.LLM_PROVIDER_ERROR,
            message,
            {"attempts": attempts},
            retryable=retryable,
        )
        self.attempts = attempts


class LLMOrchestrator:
    """Оркестратор вызовов LLM: жёсткий таймаут, ретраи с backoff, классификация ошибок.

    Важная идея: здесь нет логики провайдера, только orchestration.
    Состояние попыток живёт в RetryState, сон инжектируется (тесты не ждут).
    remaining_s (остаток бюджета прогона) режет таймаут попытки и обрывает ретраи,
    когда на паузу и следующую попытку времени уже нет.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
        timeout_s: float | None = None,
        max_tokens: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        remaining_s: Callable[[], float] | None = None,
    ) -> None:
        s = get_settings()
        self.provider = provider
        self.max_attempts = int(max_attempts or s.llm_max_attempts)
        self.base_delay_ms = int(
            base_delay_ms if base_delay_ms is not None else s.llm_retry_backoff_ms
        )
        self.timeout_s = float(timeout_s or s.llm_request_timeout_sec)
        self.max_tokens = int(max_tokens or s.llm_max_tokens)
        self.sleep = sleep
        self.remaining_s = remaining_s

    def _attempt_timeout(self) -> float | None:
        if self.remaining_s is None:
            return self.timeout_s
        left = self.remaining_s()
        if left < MIN_ATTEMPT_SEC:
            return None
        return min(self.timeout_s, left)

    def generate(
        self, *, system: str, user: str, context: dict | None = None
    ) -> OrchestratedResult:
        state = RetryState(max_attempts=self.max_attempts, base_delay_ms=self.base_delay_ms)
        provider_name = getattr(self.provider, "name", "provider")
        ctx = context or {}
        last_err: BaseException | None = None

        while not state.done:
            timeout_s = self._attempt_timeout()
            if timeout_s is None:
                log.error(
                    "llm_budget_exhausted",
                    extra={"payload": {**ctx, "attempts": state.attempt}},
                )
                raise LLMGenerationFailed(
                    ERR_BUDGET_EXHAUSTED, attempts=state.attempt, retryable=True
                ) from last_err

            attempt = state.start_attempt()
            started = time.monotonic()
            log.info(
                "llm_attempt_started",
                extra={
                    "payload": {
                        **ctx,
                        "provider": provider_name,
                        "attempt": attempt,
                        "timeout_s": round(timeout_s, 2),
                    }
                },
            )
            try:
                result = bounded_generate(self.provider, system, user, self.max_tokens, timeout_s)
            except Exception as e:
                last_err = e
                retryable = is_retryable_error(e)
                LLM_CALLS_TOTAL.labels(provider=provider_name, outcome=error_outcome(e)).inc()
                delay = state.fail(_error_text(e)[:500], retryable=retryable)
                log.warning(
                    "llm_attempt_failed",
                    extra={
                        "payload": {
                            **ctx,
                            "provider": provider_name,
                            "attempt": attempt,
                            "retryable": retryable,
                            "elapsed_ms": int((time.monotonic() - started) * 1000),
                            "err": str(e)[:200],
                        }
                    },
                )
                if delay is None:
                    break
                if self.remaining_s is not None and not next_attempt_fits(
                    delay, self.remaining_s()
                ):
                    state.give_up()
                    log.warning(
                        "llm_retry_skipped_budget",
                        extra={"payload": {**ctx, "attempt": attempt, "delay_s": delay}},
                    )
                    break
                log.info(
                    "llm_retry_scheduled",
                    extra={"payload": {**ctx, "next_attempt": attempt + 1, "delay_s": delay}},
                )
                self.sleep(delay)
                continue

            state.succeed()
            LLM_CALLS_TOTAL.labels(provider=provider_name, outcome="ok").inc()
            log.info(
                "llm_attempt_succeeded",
                extra={
                    "payload": {
                        **ctx,
                        "provider": provider_name,
                        "attempt": attempt,
                        "elapsed_ms": int((time.monotonic() - started) * 1000),
                        "input_tokens": result.input_tokens,
                        "output_tokens": result.output_tokens,
                    }
                },
            )
            return OrchestratedResult(result=result, attempts=attempt)

        message = state.last_error or "LLM не ответил: неизвестная ошибка"
        log.error(
            "llm_generation_failed",
            extra={"payload": {**ctx, "attempts": state.attempt, "err": message[:200]}},
        )
        raise LLMGenerationFailed(
            message,
            attempts=state.attempt,
            retryable=last_err is not None and is_retryable_error(last_err),
        ) from last_err
