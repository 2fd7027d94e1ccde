"""
Инициальная миграция.

Создаёт таблицы:
- raw_events
- meetings
- transcripts
- drafts
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_RAW_EVENT_STATUS = ("received", "processing", "processed", "failed")
_MEETING_STATUS = ("pending", "processing", "ready", "completed", "failed")
_TRANSCRIPT_STATUS = ("pending", "fetching", "ready", "failed")
_DRAFT_STATUS = ("pending", "generating", "generated", "sent", "failed")


def upgrade() -> None:
    op.create_table(
        "raw_events",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("external_event_id", sa.String(length=512), nullable=False, unique=True),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.Enum(*_RAW_EVENT_STATUS, name="raweventstatus"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("external_meeting_id", sa.String(length=256), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("received_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_raw_events_status_updated", "raw_events", ["status", "updated_at"])

    op.create_table(
        "meetings",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("external_meeting_id", sa.String(length=256), nullable=False, unique=True),
        sa.Column("platform", sa.String(length=32), nullable=False),
        sa.Column("host_email", sa.String(length=320), nullable=True),
        sa.Column("topic", sa.String(length=512), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("participants", sa.JSON(), nullable=False),
        sa.Column("status", sa.Enum(*_MEETING_STATUS, name="meetingstatus"), nullable=False),
        sa.Column("recording_download_url", sa.Text(), nullable=True),
        sa.Column("transcript_download_url", sa.Text(), nullable=True),
        sa.Column("last_event_id", sa.String(length=64), nullable=True),
        sa.Column("pipeline_lock_token", sa.String(length=64), nullable=True),
        sa.Column("pipeline_lock_owner", sa.String(length=64), nullable=True),
        sa.Column("pipeline_locked_until", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transcripts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "meeting_id",
            sa.String(length=64),
            sa.ForeignKey("meetings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("vtt_content", sa.Text(), nullable=True),
        sa.Column("speaker_segments", sa.JSON(), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("language", sa.String(length=16), nullable=True),
        sa.Column(
            "status", sa.Enum(*_TRANSCRIPT_STATUS, name="transcriptstatus"), nullable=False
        ),
        sa.Column("fetch_attempts", sa.Integer(), nullable=False),
        sa.Column("last_fetch_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "drafts",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column(
            "meeting_id",
            sa.String(length=64),
            sa.ForeignKey("meetings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "transcript_id",
            sa.String(length=64),
            sa.ForeignKey("transcripts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.Enum(*_DRAFT_STATUS, name="draftstatus"), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=True),
        sa.Column("input_tokens", sa.Integer(), nullable=True),
        sa.Column("output_tokens", sa.Integer(), nullable=True),
        sa.Column("cost_usd", sa.Float(), nullable=True),
        sa.Column("generation_started_at", sa.DateTime(), nullable=True),
        sa.Column("generation_completed_at", sa.DateTime(), nullable=True),
        sa.Column("generation_duration_ms", sa.Integer(), nullable=True),
        sa.Column("quality_score", sa.Integer(), nullable=True),
        sa.Column("quality_breakdown", sa.JSON(), nullable=True),
        sa.Column("quality_issues", sa.JSON(), nullable=True),
        sa.Column("quality_suggestions", sa.JSON(), nullable=True),
        sa.Column("meeting_type", sa.String(length=32), nullable=True),
        sa.Column("tone_used", sa.String(length=16), nullable=True),
        sa.Column("action_items", sa.JSON(), nullable=True),
        sa.Column("key_points_referenced", sa.JSON(), nullable=True),
        sa.Column("meeting_summary", sa.Text(), nullable=True),
        sa.Column("key_topics", sa.JSON(), nullable=True),
        sa.Column("key_decisions", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_drafts_meeting_id", "drafts", ["meeting_id"])


def downgrade() -> None:
    op.drop_index("ix_drafts_meeting_id", table_name="drafts")
    op.drop_table("drafts")
    op.drop_table("transcripts")
    op.drop_table("meetings")
    op.drop_index("ix_raw_events_status_updated", table_name="raw_events")
    op.drop_table("raw_events")

    op.execute("DROP TYPE IF EXISTS draftstatus")
    op.execute("DROP TYPE IF EXISTS transcriptstatus")
    op.execute("DROP TYPE IF EXISTS meetingstatus")
    op.execute("DROP TYPE IF EXISTS raweventstatus")
