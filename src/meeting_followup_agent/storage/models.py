"""
ORM-модели базы данных.

Назначение:
- Журнал входящих событий платформы (RawEvent, никогда не удаляется)
- Нормализованная встреча (upsert по внешнему id)
- Транскрипт (1:1 со встречей) и черновики follow-up писем
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from meeting_followup_agent.common.ids import new_uuid
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.domain.enums import (
    DraftStatus,
    MeetingStatus,
    RawEventStatus,
    TranscriptStatus,
)


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# RAW EVENT
# =============================================================================
class RawEvent(Base):
    """
    Входящее событие как есть. Ключ идемпотентности — external_event_id.
    """

    __tablename__ = "raw_events"
    __table_args__ = (Index("ix_raw_events_status_updated", "status", "updated_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_uuid)
    external_event_id: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    status: Mapped[RawEventStatus] = mapped_column(
        Enum(RawEventStatus), default=RawEventStatus.received, nullable=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_meeting_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    received_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )


# =============================================================================
# MEETING
# =============================================================================
class Meeting(Base):
    """
    Основная сущность — встреча на платформе.
    """

    __tablename__ = "meetings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_uuid)
    external_meeting_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    platform: Mapped[str] = mapped_column(String(32), default="zoom", nullable=False)

    host_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    topic: Mapped[str | None] = mapped_column(String(512), nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # минуты
    participants: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    status: Mapped[MeetingStatus] = mapped_column(
        Enum(MeetingStatus), default=MeetingStatus.pending, nullable=False
    )
    recording_download_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    transcript_download_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_event_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # аренда пайплайна (транскрипт + черновик) на встречу
    pipeline_lock_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # raw_event_id, под которым взята аренда
    pipeline_lock_owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pipeline_locked_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    transcript: Mapped[Transcript | None] = relationship(
        back_populates="meeting",
        cascade="all, delete-orphan",
        uselist=False,
    )
    drafts: Mapped[list[Draft]] = relationship(
        back_populates="meeting",
        cascade="all, delete-orphan",
    )


# =============================================================================
# TRANSCRIPT
# =============================================================================
class Transcript(Base):
    """
    Распарсенный транскрипт встречи (один на встречу).
    """

    __tablename__ = "transcripts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_uuid)
    meeting_id: Mapped[str] = mapped_column(
        ForeignKey("meetings.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    vtt_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    speaker_segments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    source: Mapped[str] = mapped_column(String(32), default="zoom", nullable=False)
    language: Mapped[str | None] = mapped_column(String(16), nullable=True)

    status: Mapped[TranscriptStatus] = mapped_column(
        Enum(TranscriptStatus), default=TranscriptStatus.pending, nullable=False
    )
    fetch_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_fetch_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    meeting: Mapped[Meeting] = relationship(back_populates="transcript")


# =============================================================================
# DRAFT
# =============================================================================
class Draft(Base):
    """
    Черновик follow-up письма. Неудачная генерация тоже сохраняется (status=failed).
    """

    __tablename__ = "drafts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_uuid)
    meeting_id: Mapped[str] = mapped_column(
        ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transcript_id: Mapped[str | None] = mapped_column(
        ForeignKey("transcripts.id", ondelete="SET NULL"), nullable=True
    )

    subject: Mapped[str] = mapped_column(Text, default="", nullable=False)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[DraftStatus] = mapped_column(
        Enum(DraftStatus), default=DraftStatus.pending, nullable=False
    )

    model: Mapped[str | None] = mapped_column(String(128), nullable=True)
    input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost_usd: Mapped[float | None] = mapped_column(Float, nullable=True)

    generation_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    generation_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    generation_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    quality_issues: Mapped[list | None] = mapped_column(JSON, nullable=True)
    quality_suggestions: Mapped[list | None] = mapped_column(JSON, nullable=True)

    meeting_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    tone_used: Mapped[str | None] = mapped_column(String(16), nullable=True)
    action_items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    key_points_referenced: Mapped[list | None] = mapped_column(JSON, nullable=True)
    meeting_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_topics: Mapped[list | None] = mapped_column(JSON, nullable=True)
    key_decisions: Mapped[list | None] = mapped_column(JSON, nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    meeting: Mapped[Meeting] = relationship(back_populates="drafts")
