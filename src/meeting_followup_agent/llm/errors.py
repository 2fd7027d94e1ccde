"""
Классификация ошибок LLM-провайдеров.

Не ретраим: аутентификация (401/403, invalid_api_key), ошибки запроса
(400/404/422, invalid_request, validation).
Ретраим: 429/rate limit, таймауты, 5xx/529 overloaded, сетевые сбои.
Неизвестные ошибки считаем временными.
"""

from __future__ import annotations

from meeting_followup_agent.common.errors import (
    ErrCode,
    LLMTimeoutError,
    ProviderError,
    is_retryable_status,
)

FATAL_STATUSES = {400, 401, 403, 404, 422}

_FATAL_MARKERS = ("authentication", "invalid_api_key", "invalid_request", "validation")


def provider_error_from_response(status_code: int, text: str) -> ProviderError:
    retryable = is_retryable_status(status_code) and status_code not in FATAL_STATUSES
    return ProviderError(
        ErrCode.LLM_PROVIDER_ERROR,
        f"API error {status_code}",
        {"status": status_code, "text_head": (text or "")[:500]},
        retryable=retryable,
    )


def is_retryable_error(err: BaseException) -> bool:
    if isinstance(err, ProviderError):
        return err.retryable

    message = str(err).lower()
    return not any(m in message for m in _FATAL_MARKERS)


def error_outcome(err: BaseException) -> str:
    """Метка исхода для LLM_CALLS_TOTAL."""
    if isinstance(err, LLMTimeoutError) or (
        isinstance(err, ProviderError) and err.code == ErrCode.LLM_TIMEOUT
    ):
        return "timeout"
    return "retryable_error" if is_retryable_error(err) else "fatal_error"
