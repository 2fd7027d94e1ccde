"""
Доменные перечисления (enum).

Используются во всей системе:
- статусы RawEvent / Meeting / Transcript / Draft
- виды событий платформы
- тип встречи и тон письма
"""

from __future__ import annotations

import enum


class RawEventStatus(str, enum.Enum):
    """
    Статус обработки входящего события.
    """

    received = "received"
    processing = "processing"
    processed = "processed"
    failed = "failed"


class MeetingStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    ready = "ready"
    completed = "completed"
    failed = "failed"


class TranscriptStatus(str, enum.Enum):
    pending = "pending"
    fetching = "fetching"
    ready = "ready"
    failed = "failed"


class DraftStatus(str, enum.Enum):
    pending = "pending"
    generating = "generating"
    generated = "generated"
    sent = "sent"
    failed = "failed"


class EventKind(str, enum.Enum):
    """
    Виды событий платформы, которые понимает машина состояний.
    """

    url_validation = "endpoint.url_validation"
    meeting_ended = "meeting.ended"
    recording_completed = "recording.completed"
    transcript_completed = "recording.transcript_completed"

    @classmethod
    def parse(cls, raw: str | None) -> EventKind | None:
        try:
            return cls(raw)
        except ValueError:
            return None


class HandleAction(str, enum.Enum):
    created = "created"
    updated = "updated"
    skipped = "skipped"
    failed = "failed"


class MeetingType(str, enum.Enum):
    sales_call = "sales_call"
    internal_sync = "internal_sync"
    client_review = "client_review"
    technical_discussion = "technical_discussion"
    general = "general"


class Tone(str, enum.Enum):
    formal = "formal"
    casual = "casual"
    neutral = "neutral"
