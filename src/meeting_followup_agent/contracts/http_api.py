"""
HTTP API контракты (Pydantic-модели).

Назначение:
- стабильные структуры ответов для клиентов и операторов
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .versions import HTTP_API_VERSION


# =============================================================================
# ВЕБХУКИ
# =============================================================================
class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    processing: bool = False
    event_id: str | None = None
    external_meeting_id: str | None = None
    action: str | None = None


class UrlValidationResponse(BaseModel):
    plainToken: str
    encryptedToken: str


# =============================================================================
# ВСТРЕЧИ / ЧЕРНОВИКИ
# =============================================================================
class TranscriptView(BaseModel):
    id: str
    status: str
    word_count: int = 0
    fetch_attempts: int = 0
    last_fetch_error: str | None = None
    speakers: list[dict[str, Any]] = Field(default_factory=list)


class DraftView(BaseModel):
    id: str
    status: str
    subject: str = ""
    body: str = ""
    meeting_type: str | None = None
    tone_used: str | None = None
    quality_score: int | None = None
    quality_grade: str | None = None
    quality_breakdown: dict[str, int] | None = None
    quality_issues: list[str] = Field(default_factory=list)
    quality_suggestions: list[str] = Field(default_factory=list)
    action_items: list[dict[str, Any]] = Field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int | None = None
    cost_usd: float | None = None
    generation_duration_ms: int | None = None
    retry_count: int = 0
    error_message: str | None = None
    created_at: datetime | None = None


class MeetingGetResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    meeting_id: str
    external_meeting_id: str
    platform: str
    status: str
    topic: str | None = None
    host_email: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int | None = None
    participants: list[dict[str, Any]] = Field(default_factory=list)

    transcript: TranscriptView | None = None
    draft: DraftView | None = None
    draft_history: list[DraftView] = Field(default_factory=list)


class ReprocessResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    raw_event_id: str
    action: str
    meeting_id: str | None = None
    error: str | None = None
