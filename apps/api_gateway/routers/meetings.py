"""
HTTP роуты оператора.

- GET  /v1/meetings/{meeting_id}             встреча + транскрипт + черновики
- POST /v1/events/{raw_event_id}/reprocess   повторная обработка RawEvent

meeting_id принимается как внутренний id или внешний id платформы.
Авторизация: Depends(auth_dep)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from apps.api_gateway.deps import auth_dep
from meeting_followup_agent.common.errors import ErrCode
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.security import AuthContext
from meeting_followup_agent.contracts.http_api import (
    DraftView,
    MeetingGetResponse,
    ReprocessResponse,
    TranscriptView,
)
from meeting_followup_agent.processing.quality import quality_grade
from meeting_followup_agent.services.event_service import handle_raw_event
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.models import Draft, Transcript
from meeting_followup_agent.storage.repositories import (
    DraftRepository,
    MeetingRepository,
    RawEventRepository,
    TranscriptRepository,
)
from meeting_followup_agent.transcript.parser import segments_from_dicts
from meeting_followup_agent.transcript.speaker_stats import speaker_stats

log = get_project_logger()

router = APIRouter()


def _transcript_view(t: Transcript) -> TranscriptView:
    segments = segments_from_dicts(t.speaker_segments)
    return TranscriptView(
        id=t.id,
        status=t.status.value,
        word_count=t.word_count,
        fetch_attempts=t.fetch_attempts,
        last_fetch_error=t.last_fetch_error,
        speakers=[vars(st) for st in speaker_stats(segments)],
    )


def _draft_view(d: Draft) -> DraftView:
    return DraftView(
        id=d.id,
        status=d.status.value,
        subject=d.subject or "",
        body=d.body or "",
        meeting_type=d.meeting_type,
        tone_used=d.tone_used,
        quality_score=d.quality_score,
        quality_grade=quality_grade(d.quality_score) if d.quality_score is not None else None,
        quality_breakdown=d.quality_breakdown,
        quality_issues=list(d.quality_issues or []),
        quality_suggestions=list(d.quality_suggestions or []),
        action_items=list(d.action_items or []),
        input_tokens=d.input_tokens,
        output_tokens=d.output_tokens,
        cost_usd=d.cost_usd,
        generation_duration_ms=d.generation_duration_ms,
        retry_count=d.retry_count,
        error_message=d.error_message,
        created_at=d.created_at,
    )


@router.get("/meetings/{meeting_id}", response_model=MeetingGetResponse)
def get_meeting(meeting_id: str, _: AuthContext = Depends(auth_dep)) -> MeetingGetResponse:
    with db_session() as s:
        repo = MeetingRepository(s)
        m = repo.get(meeting_id) or repo.get_by_external_id(meeting_id)
        if not m:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": ErrCode.NOT_FOUND, "message": "Встреча не найдена"},
            )

        t = TranscriptRepository(s).get_by_meeting(m.id)
        drafts = DraftRepository(s)
        current = drafts.current_for_meeting(m.id)

        return MeetingGetResponse(
            meeting_id=m.id,
            external_meeting_id=m.external_meeting_id,
            platform=m.platform,
            status=m.status.value,
            topic=m.topic,
            host_email=m.host_email,
            start_time=m.start_time,
            end_time=m.end_time,
            duration=m.duration,
            participants=list(m.participants or []),
            transcript=_transcript_view(t) if t else None,
            draft=_draft_view(current) if current else None,
            draft_history=[_draft_view(d) for d in drafts.list_for_meeting(m.id)],
        )


@router.post("/events/{raw_event_id}/reprocess", response_model=ReprocessResponse)
async def reprocess_event(
    raw_event_id: str, ctx: AuthContext = Depends(auth_dep)
) -> ReprocessResponse:
    with db_session() as s:
        if RawEventRepository(s).get(raw_event_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": ErrCode.NOT_FOUND, "message": "Событие не найдено"},
            )

    log.info(
        "raw_event_reprocess_requested",
        extra={"payload": {"raw_event_id": raw_event_id, "subject": ctx.subject}},
    )
    result = await run_in_threadpool(handle_raw_event, raw_event_id)
    return ReprocessResponse(
        raw_event_id=raw_event_id,
        action=result.action.value,
        meeting_id=result.meeting_id,
        error=result.error,
    )
