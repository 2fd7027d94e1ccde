"""
Выбор LLM-провайдера по LLM_PROVIDER (anthropic | openai_compat | mock).

Импорт реальных провайдеров ленивый: mock-режим не требует ключей.
"""

from __future__ import annotations

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ErrCode, ProviderError

from .base import LLMProvider


def get_llm_provider(kind: str | None = None) -> LLMProvider:
    kind = (kind or get_settings().llm_provider or "anthropic").strip().lower()

    if kind == "mock":
        from .mock import MockLLMProvider

        return MockLLMProvider()
    if kind == "openai_compat":
        from .openai_compat import OpenAICompatProvider

        return OpenAICompatProvider()
    if kind == "anthropic":
        from .anthropic_messages import AnthropicMessagesProvider

        return AnthropicMessagesProvider()

    raise ProviderError(
        ErrCode.LLM_PROVIDER_ERROR, f"Неизвестный LLM_PROVIDER: {kind}", retryable=False
    )
