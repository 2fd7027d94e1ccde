"""
Базовые типы для LLM.

Назначение:
- единый контракт провайдера генерации (Anthropic / OpenAI-compatible / mock)
- результат генерации с usage-токенами для расчёта стоимости
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResult:
    """
    Результат генерации LLM.
    """

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str | None = None
    model: str | None = None


class LLMProvider(ABC):
    """
    Интерфейс провайдера LLM.

    Реализация обязана:
    - передавать timeout_s в транспорт
    - бросать ProviderError(retryable=...) на ошибки API
    """

    name: str = "base"

    @abstractmethod
    def generate(self, *, system: str, user: str, max_tokens: int, timeout_s: float) -> LLMResult:
        raise NotImplementedError
