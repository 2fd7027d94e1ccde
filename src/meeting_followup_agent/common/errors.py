"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/очередей/сохранённых статусов
- единый стиль исключений по проекту
- явный признак retryable у ошибок провайдеров (ретраи решает оркестратор)
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"

    # Вебхуки
    BAD_SIGNATURE = "bad_signature"
    MALFORMED_EVENT = "malformed_event"
    MISSING_DOWNLOAD_TOKEN = "missing_download_token"

    # Провайдеры
    LLM_PROVIDER_ERROR = "llm_provider_error"
    LLM_TIMEOUT = "llm_timeout"
    TRANSCRIPT_DOWNLOAD_ERROR = "transcript_download_error"

    # Инфра/хранилища
    DB_ERROR = "db_error"
    REDIS_ERROR = "redis_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class MalformedEventError(AppError):
    """Входное событие без обязательных полей. Не ретраится."""

    def __init__(self, message: str = "Некорректное событие", details: dict | None = None) -> None:
        super().__init__(ErrCode.MALFORMED_EVENT, message, details)


class MissingDownloadTokenError(MalformedEventError):
    """Событие транскрипта без токена загрузки: скачать нечем."""

    def __init__(self, details: dict | None = None) -> None:
        super().__init__("Missing download_token", details)
        self.code = ErrCode.MISSING_DOWNLOAD_TOKEN


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class ConflictError(AppError):
    def __init__(self, message: str = "Конфликт", details: dict | None = None) -> None:
        super().__init__(ErrCode.CONFLICT, message, details)


class ProviderError(AppError):
    """
    Ошибка внешнего провайдера (LLM, загрузка транскрипта).

    retryable=True  — таймауты, 429, 5xx, сетевые сбои
    retryable=False — 401/403, 400/404/422 и прочие ошибки запроса
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: dict | None = None,
        *,
        retryable: bool = True,
    ) -> None:
        super().__init__(code, message, details)
        self.retryable = retryable


class LLMTimeoutError(ProviderError):
    def __init__(self, timeout_s: float, details: dict | None = None) -> None:
        super().__init__(
            ErrCode.LLM_TIMEOUT,
            f"LLM не ответил за {timeout_s:.1f}с",
            {"timeout_s": timeout_s, **(details or {})},
            retryable=True,
        )
        self.timeout_s = timeout_s


def is_retryable_status(status_code: int) -> bool:
    """429, 408 и 5xx (включая 529 overloaded) — временные."""
    return status_code in {408, 429} or status_code >= 500
