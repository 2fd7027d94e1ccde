"""
Политика ретраев как явная машина состояний.

Pending -> Attempting(n) -> Succeeded | ExhaustedFailed

backoff_delay() — чистая функция attempt -> delay, без I/O.
give_up() обрывает ретраи досрочно: остатка бюджета прогона не хватит
на паузу и ещё одну попытку (next_attempt_fits).
Сон между попытками и сам вызов делает оркестратор.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


# меньше этого на попытку не оставляем: вызов заведомо не успеет
MIN_ATTEMPT_SEC = 1.0


class RetryPhase(str, enum.Enum):
    pending = "pending"
    attempting = "attempting"
    succeeded = "succeeded"
    exhausted_failed = "exhausted_failed"


def backoff_delay(attempt: int, *, base_ms: int = 1000) -> float:
    """
    Задержка (сек) ПОСЛЕ неудачной попытки attempt (1-based):
    1 -> base, 2 -> 2*base, 3 -> 4*base ...
    """
    if attempt < 1:
        return 0.0
    return (base_ms * (2 ** (attempt - 1))) / 1000.0


def next_attempt_fits(
    delay_s: float, remaining_s: float, *, min_attempt_s: float = MIN_ATTEMPT_SEC
) -> bool:
    return remaining_s - delay_s >= min_attempt_s


@dataclass
class RetryState:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    phase: RetryPhase = RetryPhase.pending
    attempt: int = 0
    last_error: str | None = None

    @property
    def done(self) -> bool:
        return self.phase in {RetryPhase.succeeded, RetryPhase.exhausted_failed}

    def start_attempt(self) -> int:
        if self.done:
            raise RuntimeError(f"retry state is terminal: {self.phase.value}")
        if self.attempt >= self.max_attempts:
            raise RuntimeError("no attempts left")
        self.attempt += 1
        self.phase = RetryPhase.attempting
        return self.attempt

    def succeed(self) -> None:
        if self.phase != RetryPhase.attempting:
            raise RuntimeError(f"succeed() outside of attempt: {self.phase.value}")
        self.phase = RetryPhase.succeeded
        self.last_error = None

    def fail(self, error: str, *, retryable: bool) -> float | None:
        """
        Фиксирует неудачу текущей попытки.

        Возвращает задержку перед следующей попыткой
        или None, если дальше пробовать нельзя (состояние ExhaustedFailed).
        """
        if self.phase != RetryPhase.attempting:
            raise RuntimeError(f"fail() outside of attempt: {self.phase.value}")
        self.last_error = error
        if not retryable or self.attempt >= self.max_attempts:
            self.phase = RetryPhase.exhausted_failed
            return None
        return backoff_delay(self.attempt, base_ms=self.base_delay_ms)

    def give_up(self, error: str | None = None) -> None:
        if self.done:
            return
        self.phase = RetryPhase.exhausted_failed
        if error:
            self.last_error = error
