from __future__ import annotations

from dataclasses import dataclass

import requests

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ErrCode, ProviderError
from meeting_followup_agent.common.logging import get_llm_logger

from .base import LLMProvider, LLMResult
from .errors import provider_error_from_response

log = get_llm_logger()


@dataclass
class OpenAICompatConfig:
    """Настройки OpenAI-compatible API."""

    api_base: str
    api_key: str
    model: str = "gpt-4o-mini"
    temperature: float = 0.2


class OpenAICompatProvider(LLMProvider):
    """Провайдер LLM через OpenAI-compatible /chat/completions."""

    name = "openai_compat"

    def __init__(self, cfg: OpenAICompatConfig | None = None) -> None:
        if cfg is None:
            s = get_settings()
            if not s.openai_api_base:
                raise ProviderError(
                    ErrCode.LLM_PROVIDER_ERROR, "OPENAI_API_BASE не задан", retryable=False
                )
            if not s.openai_api_key:
                raise ProviderError(
                    ErrCode.LLM_PROVIDER_ERROR, "OPENAI_API_KEY не задан", retryable=False
                )
            cfg = OpenAICompatConfig(
                api_base=s.openai_api_base,
                api_key=s.openai_api_key,
                model=s.llm_model_id,
                temperature=s.llm_temperature,
            )
        self.cfg = cfg

    def generate(self, *, system: str, user: str, max_tokens: int, timeout_s: float) -> LLMResult:
        payload = {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.cfg.temperature,
            "max_tokens": max_tokens,
        }

        url = self.cfg.api_base.rstrip("/") + "/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.cfg.api_key}",
            "Content-Type": "application/json",
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
            choice = data["choices"][0]
            text = choice["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Не удалось извлечь текст из ответа LLM",
                {"err": str(e)[:200], "text_head": resp.text[:500]},
                retryable=False,
            ) from e

        usage = data.get("usage") or {}
        return LLMResult(
            content=text or "",
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            stop_reason=choice.get("finish_reason"),
            model=data.get("model") or self.cfg.model,
        )
