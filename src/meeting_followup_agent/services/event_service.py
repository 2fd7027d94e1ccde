"""
Обработка сохранённых событий платформы (машина состояний RawEvent).

Назначение:
- идемпотентность: processed-событие повторно не обрабатывается
- захват события (processing коммитится ДО любой работы): падение процесса
  оставляет событие видимым для оператора и джобы зависших событий
- маршрутизация по виду события: meeting.ended / recording.completed /
  recording.transcript_completed, неизвестные виды -> skipped
- итоговый статус: processed | failed (+ встреча в failed при сбое)

Дорогие стадии (транскрипт + черновик) одной встречи выполняются под арендой
встречи: конкурирующее событие стадию не запускает.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import DBAPIError

from meeting_followup_agent.common.errors import (
    ConflictError,
    MalformedEventError,
    MissingDownloadTokenError,
    ValidationError,
)
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.metrics import RAW_EVENTS_HANDLED_TOTAL
from meeting_followup_agent.common.run_context import PipelineRun, Stage
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.connectors.zoom.payloads import (
    download_token,
    meeting_fields,
    transcript_file,
    video_file,
)
from meeting_followup_agent.domain.enums import (
    EventKind,
    HandleAction,
    MeetingStatus,
    RawEventStatus,
)
from meeting_followup_agent.domain.state_machine import transition_event
from meeting_followup_agent.llm.base import LLMProvider
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.repositories import MeetingRepository, RawEventRepository
from meeting_followup_agent.transcript.downloader import TranscriptDownloader

from .draft_service import build_draft_context, generate_draft
from .meeting_service import (
    MeetingLeaseBusy,
    advance_meeting,
    mark_meeting_failed,
    meeting_lease,
    upsert_meeting,
)
from .transcript_service import fetch_and_store_transcript

log = get_project_logger()


class EventStillRunning(ConflictError):
    """Аренду встречи держит прогон этого же события: финализирует он."""

    def __init__(self, raw_event_id: str, meeting_id: str | None) -> None:
        super().__init__(
            "Событие уже обрабатывается", {"raw_event_id": raw_event_id, "meeting_id": meeting_id}
        )


@dataclass
class HandleResult:
    action: HandleAction
    raw_event_id: str
    meeting_id: str | None = None
    draft_id: str | None = None
    error: str | None = None


@dataclass
class _EventContext:
    raw_event_id: str
    event_type: str
    envelope: dict[str, Any]
    run: PipelineRun
    downloader: TranscriptDownloader | None
    provider: LLMProvider | None
    sleep: Callable[[float], None]
    meeting_id: str | None = None
    external_meeting_id: str | None = None
    draft_id: str | None = None


# =============================================================================
# ЗАХВАТ / ФИНАЛИЗАЦИЯ
# =============================================================================
def _claim(raw_event_id: str) -> tuple[HandleResult | None, str, dict[str, Any]]:
    """
    (None, event_type, payload) — событие захвачено;
    (HandleResult, ...) — обрабатывать нечего.
    """
    with db_session() as session:
        repo = RawEventRepository(session)
        ev = repo.get(raw_event_id)
        if ev is None:
            return (
                HandleResult(HandleAction.failed, raw_event_id, error="Event not found"),
                "",
                {},
            )

        tr = transition_event(ev.status, RawEventStatus.processing)
        if not tr.ok:
            log.info(
                "raw_event_skip",
                extra={"payload": {"raw_event_id": raw_event_id, "reason": tr.reason}},
            )
            return HandleResult(HandleAction.skipped, raw_event_id), ev.event_type, {}

        if not repo.claim(raw_event_id, now=utc_now()):
            # обогнали: событие уже processed
            return HandleResult(HandleAction.skipped, raw_event_id), ev.event_type, {}

        return None, ev.event_type, dict(ev.payload or {})


def _mark_processed(ctx: _EventContext) -> None:
    try:
        with db_session() as session:
            RawEventRepository(session).mark_processed(
                ctx.raw_event_id, now=utc_now(), external_meeting_id=ctx.external_meeting_id
            )
    except DBAPIError as e:
        # результат уже сохранён; событие останется в processing до джобы
        log.error(
            "status_update_lagged",
            extra={
                "payload": {
                    "raw_event_id": ctx.raw_event_id,
                    "target": "processed",
                    "err": str(e)[:200],
                }
            },
        )


def _mark_failed(raw_event_id: str, error: str) -> None:
    try:
        with db_session() as session:
            RawEventRepository(session).mark_failed(raw_event_id, error=error[:2000], now=utc_now())
    except DBAPIError as e:
        log.error(
            "status_update_lagged",
            extra={
                "payload": {"raw_event_id": raw_event_id, "target": "failed", "err": str(e)[:200]}
            },
        )


# =============================================================================
# СТАДИИ
# =============================================================================
def _upsert(
    ctx: _EventContext,
    *,
    recording_url: str | None = None,
    transcript_url: str | None = None,
    target_status: MeetingStatus | None = None,
) -> bool:
    fields = meeting_fields(ctx.envelope)
    if not fields.external_meeting_id:
        raise MalformedEventError(
            "Missing meeting uuid", {"raw_event_id": ctx.raw_event_id, "event": ctx.event_type}
        )
    ctx.external_meeting_id = fields.external_meeting_id

    with ctx.run.stage(Stage.MEETING_UPSERTED), db_session() as session:
        meeting, created = upsert_meeting(
            session,
            fields,
            raw_event_id=ctx.raw_event_id,
            recording_url=recording_url,
            transcript_url=transcript_url,
            target_status=target_status,
        )
        ctx.meeting_id = meeting.id
    return created


def _run_pipeline(ctx: _EventContext, *, download_url: str, token: str) -> None:
    """Транскрипт + черновик под арендой встречи."""
    meeting_id = ctx.meeting_id
    try:
        with meeting_lease(meeting_id, owner=ctx.raw_event_id):
            stored = fetch_and_store_transcript(
                meeting_id,
                download_url=download_url,
                token=token,
                run=ctx.run,
                downloader=ctx.downloader,
                sleep=ctx.sleep,
            )

            with db_session() as session:
                meeting = MeetingRepository(session).get(meeting_id)
                draft_ctx = build_draft_context(meeting, stored.content)

            result = generate_draft(
                meeting_id,
                stored.transcript_id,
                draft_ctx,
                run=ctx.run,
                provider=ctx.provider,
                sleep=ctx.sleep,
            )
            ctx.draft_id = result.draft_id
            if result.success:
                advance_meeting(meeting_id, MeetingStatus.completed)
            else:
                log.warning(
                    "draft_not_generated",
                    extra={
                        "payload": {
                            "raw_event_id": ctx.raw_event_id,
                            "meeting_id": meeting_id,
                            "draft_id": result.draft_id,
                            "err": (result.error or "")[:200],
                        }
                    },
                )
    except MeetingLeaseBusy as e:
        if e.owner == ctx.raw_event_id:
            raise EventStillRunning(ctx.raw_event_id, meeting_id) from e
        log.info(
            "pipeline_lease_busy",
            extra={"payload": {"raw_event_id": ctx.raw_event_id, "meeting_id": meeting_id}},
        )


def _handle_meeting_ended(ctx: _EventContext) -> HandleAction:
    created = _upsert(ctx)
    return HandleAction.created if created else HandleAction.updated


def _handle_recording_completed(ctx: _EventContext) -> HandleAction:
    tfile = transcript_file(ctx.envelope)
    vfile = video_file(ctx.envelope)
    token = download_token(ctx.envelope)
    transcript_url = (tfile or {}).get("download_url")

    created = _upsert(
        ctx,
        recording_url=(vfile or {}).get("download_url"),
        transcript_url=transcript_url,
        # без транскрипта ждать нечего: встреча готова
        target_status=None if tfile else MeetingStatus.ready,
    )

    if tfile and token and transcript_url:
        _run_pipeline(ctx, download_url=transcript_url, token=token)
    elif tfile:
        log.warning(
            "transcript_without_download_token",
            extra={"payload": {"raw_event_id": ctx.raw_event_id, "meeting_id": ctx.meeting_id}},
        )
    return HandleAction.created if created else HandleAction.updated


def _handle_transcript_completed(ctx: _EventContext) -> HandleAction:
    token = download_token(ctx.envelope)
    if not token:
        raise MissingDownloadTokenError({"raw_event_id": ctx.raw_event_id})

    tfile = transcript_file(ctx.envelope)
    if tfile is None:
        log.info(
            "transcript_file_missing",
            extra={"payload": {"raw_event_id": ctx.raw_event_id}},
        )
        return HandleAction.skipped

    transcript_url = tfile.get("download_url")
    if not transcript_url:
        raise ValidationError(
            "Transcript file has no download_url", {"raw_event_id": ctx.raw_event_id}
        )

    created = _upsert(ctx, transcript_url=transcript_url)
    _run_pipeline(ctx, download_url=transcript_url, token=token)
    return HandleAction.created if created else HandleAction.updated


_HANDLERS: dict[EventKind, Callable[[_EventContext], HandleAction]] = {
    EventKind.meeting_ended: _handle_meeting_ended,
    EventKind.recording_completed: _handle_recording_completed,
    EventKind.transcript_completed: _handle_transcript_completed,
}


# =============================================================================
# PUBLIC API
# =============================================================================
def handle_raw_event(
    raw_event_id: str,
    *,
    run: PipelineRun | None = None,
    downloader: TranscriptDownloader | None = None,
    provider: LLMProvider | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> HandleResult:
    own_run = run is None
    run = run or PipelineRun(service="events")

    skipped, event_type, envelope = _claim(raw_event_id)
    if skipped is not None:
        RAW_EVENTS_HANDLED_TOTAL.labels(
            event_type=event_type or "unknown", action=skipped.action.value
        ).inc()
        return skipped

    ctx = _EventContext(
        raw_event_id=raw_event_id,
        event_type=event_type,
        envelope=envelope,
        run=run,
        downloader=downloader,
        provider=provider,
        sleep=sleep,
    )
    log.info(
        "raw_event_processing",
        extra={
            "payload": {
                "raw_event_id": raw_event_id,
                "event_type": event_type,
                "run_id": run.run_id,
            }
        },
    )

    try:
        with run.stage(Stage.EVENT_HANDLED, event_type=event_type):
            handler = _HANDLERS.get(EventKind.parse(event_type))
            if handler is None:
                log.info(
                    "raw_event_unknown_kind",
                    extra={"payload": {"raw_event_id": raw_event_id, "event_type": event_type}},
                )
                action = HandleAction.skipped
            else:
                action = handler(ctx)
    except EventStillRunning:
        # первый прогон ещё идёт и сам выставит итоговый статус
        result = HandleResult(HandleAction.skipped, raw_event_id, meeting_id=ctx.meeting_id)
        log.info(
            "raw_event_still_running",
            extra={"payload": {"raw_event_id": raw_event_id, "meeting_id": ctx.meeting_id}},
        )
    except (MalformedEventError, ValidationError) as e:
        # некорректный вход: не ретраим, встречу не трогаем
        _mark_failed(raw_event_id, e.message)
        result = HandleResult(
            HandleAction.failed, raw_event_id, meeting_id=ctx.meeting_id, error=e.message
        )
        log.error(
            "raw_event_invalid",
            extra={"payload": {"raw_event_id": raw_event_id, "err": e.message[:200]}},
        )
    except Exception as e:
        error = str(e) or e.__class__.__name__
        _mark_failed(raw_event_id, error)
        if ctx.meeting_id:
            mark_meeting_failed(ctx.meeting_id, reason=error)
        result = HandleResult(
            HandleAction.failed, raw_event_id, meeting_id=ctx.meeting_id, error=error
        )
        log.error(
            "raw_event_failed",
            extra={
                "payload": {
                    "raw_event_id": raw_event_id,
                    "meeting_id": ctx.meeting_id,
                    "err": error[:200],
                }
            },
        )
    else:
        _mark_processed(ctx)
        result = HandleResult(
            action, raw_event_id, meeting_id=ctx.meeting_id, draft_id=ctx.draft_id
        )
        log.info(
            "raw_event_processed",
            extra={
                "payload": {
                    "raw_event_id": raw_event_id,
                    "action": action.value,
                    "meeting_id": ctx.meeting_id,
                    "draft_id": ctx.draft_id,
                }
            },
        )

    RAW_EVENTS_HANDLED_TOTAL.labels(event_type=event_type, action=result.action.value).inc()
    if own_run:
        run.finish(status=result.action.value, raw_event_id=raw_event_id)
    return result


def handle_raw_events(raw_event_ids: list[str], **kwargs: Any) -> list[HandleResult]:
    """Пакетная (повторная) обработка, по одному событию за раз."""
    log.info("raw_events_batch_started", extra={"payload": {"count": len(raw_event_ids)}})
    results = [handle_raw_event(rid, **kwargs) for rid in raw_event_ids]
    log.info(
        "raw_events_batch_finished",
        extra={
            "payload": {
                "count": len(results),
                "failed": sum(1 for r in results if r.action == HandleAction.failed),
            }
        },
    )
    return results
