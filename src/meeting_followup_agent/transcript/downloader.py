"""
Загрузка VTT-транскрипта по download_url платформы.

Назначение:
- GET с Bearer download_token и явным таймаутом
- классификация ошибок: временные (таймаут, 429, 5xx, сеть) vs фатальные (4xx)
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ErrCode, ProviderError, is_retryable_status
from meeting_followup_agent.common.logging import get_project_logger

log = get_project_logger()


@dataclass
class TranscriptDownloader:
    timeout_s: float

    @classmethod
    def from_settings(cls) -> TranscriptDownloader:
        return cls(timeout_s=float(get_settings().transcript_download_timeout_sec))

    def download(self, url: str, token: str) -> str:
        log.info(
            "transcript_download_started",
            extra={"payload": {"url_head": url[:50], "timeout_s": self.timeout_s}},
        )
        try:
            resp = requests.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_s,
            )
        except requests.Timeout as e:
            raise ProviderError(
                ErrCode.TRANSCRIPT_DOWNLOAD_ERROR,
                "Таймаут загрузки транскрипта",
                {"err": str(e)[:200]},
                retryable=True,
            ) from e
        except requests.RequestException as e:
            raise ProviderError(
                ErrCode.TRANSCRIPT_DOWNLOAD_ERROR,
                "Ошибка HTTP при загрузке транскрипта",
                {"err": str(e)[:200]},
                retryable=True,
            ) from e

        if resp.status_code >= 400:
            raise ProviderError(
                ErrCode.TRANSCRIPT_DOWNLOAD_ERROR,
                f"Failed to download transcript: {resp.status_code}",
                {"status": resp.status_code, "text_head": resp.text[:200]},
                retryable=is_retryable_status(resp.status_code),
            )

        content = resp.text
        log.info(
            "transcript_download_finished",
            extra={"payload": {"content_length": len(content)}},
        )
        return content
