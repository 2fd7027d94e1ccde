"""
Провайдер Anthropic Messages API.

POST {base}/v1/messages
headers: x-api-key, anthropic-version
body: model, max_tokens, system, messages=[{role: user, content}]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ErrCode, ProviderError
from meeting_followup_agent.common.logging import get_llm_logger

from .base import LLMProvider, LLMResult
from .errors import provider_error_from_response

log = get_llm_logger()


@dataclass
class AnthropicConfig:
    api_base: str
    api_key: str
    model: str
    version: str = "2023-06-01"
    temperature: float = 0.2


class AnthropicMessagesProvider(LLMProvider):
    name = "anthropic"

    def __init__(self, cfg: AnthropicConfig | None = None) -> None:
        if cfg is None:
            s = get_settings()
            if not s.anthropic_api_key:
                raise ProviderError(
                    ErrCode.LLM_PROVIDER_ERROR, "ANTHROPIC_API_KEY не задан", retryable=False
                )
            cfg = AnthropicConfig(
                api_base=s.anthropic_api_base,
                api_key=s.anthropic_api_key,
                model=s.llm_model_id,
                version=s.anthropic_version,
                temperature=s.llm_temperature,
            )
        self.cfg = cfg

    def generate(self, *, system: str, user: str, max_tokens: int, timeout_s: float) -> LLMResult:
        url = self.cfg.api_base.rstrip("/") + "/v1/messages"
        headers = {
            "x-api-key": self.cfg.api_key,
            "anthropic-version": self.cfg.version,
            "content-type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": self.cfg.model,
            "max_tokens": max_tokens,
            "temperature": self.cfg.temperature,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }

        try:
            resp = requests.post(url, headers=headers, json=payload, timeout=timeout_s)
        except requests.Timeout as e:
            raise ProviderError(
                ErrCode.LLM_TIMEOUT, "Таймаут HTTP при вызове LLM", {"err": str(e)[:200]}
            ) from e
        except requests.RequestException as e:
            log.error(
                "llm_http_error",
                extra={"payload": {"provider": self.name, "err": str(e)[:200]}},
            )
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR, "Ошибка HTTP при вызове LLM", {"err": str(e)[:200]}
            ) from e

        if resp.status_code >= 400:
            raise provider_error_from_response(resp.status_code, resp.text)

        try:
            data = resp.json()
            blocks = data.get("content") or []
            text = "".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text")
            usage = data.get("usage") or {}
        except (ValueError, AttributeError, TypeError) as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "LLM вернул невалидный ответ",
                {"err": str(e)[:200], "text_head": resp.text[:500]},
                retryable=False,
            ) from e

        if not text:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Unexpected response type from AI",
                {"data_head": str(data)[:500]},
                retryable=False,
            )

        return LLMResult(
            content=text,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            stop_reason=data.get("stop_reason"),
            model=data.get("model") or self.cfg.model,
        )
