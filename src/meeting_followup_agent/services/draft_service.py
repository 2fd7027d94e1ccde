"""
Генерация follow-up черновика по транскрипту.

Назначение:
- дедупликация: готовый черновик для того же транскрипта возвращается как есть,
  свежий "generating" означает, что генерация уже идёт, протухший закрывается
  как failed ("abandoned")
- классификация встречи -> промпт -> LLM (жёсткий таймаут + ретраи) -> разбор
- оценка качества и сохранение результата в Draft
- любой провал — терминальный failed Draft с ошибкой и числом попыток

Алгоритм:
1) пустой транскрипт -> failed без вызова API
2) classify_meeting
3) build_user_prompt
4) Draft(status=generating) коммитится до вызова LLM (маркер "в работе")
5) LLMOrchestrator.generate
6) parse_draft_response
7) score_draft
8) Draft -> generated (тело + блок action items, токены, стоимость, качество)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.metrics import record_draft_result
from meeting_followup_agent.common.run_context import PipelineRun, Stage
from meeting_followup_agent.common.time import format_meeting_date, utc_now
from meeting_followup_agent.domain.enums import DraftStatus
from meeting_followup_agent.llm.base import LLMProvider
from meeting_followup_agent.llm.factory import get_llm_provider
from meeting_followup_agent.llm.orchestrator import LLMGenerationFailed, LLMOrchestrator
from meeting_followup_agent.processing.classifier import classify_meeting, extract_participants
from meeting_followup_agent.processing.meeting_rules import configured_rules
from meeting_followup_agent.processing.prompts import (
    SYSTEM_PROMPT,
    FollowUpContext,
    build_user_prompt,
    calculate_cost_usd,
    format_action_items,
    parse_draft_response,
)
from meeting_followup_agent.processing.quality import meets_quality_threshold, score_draft
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.models import Draft, Meeting
from meeting_followup_agent.storage.repositories import DraftRepository

log = get_project_logger()

ERR_EMPTY_TRANSCRIPT = "Transcript is empty"
ERR_IN_FLIGHT = "generation_in_flight"
ERR_ABANDONED = "abandoned"


@dataclass
class GenerateDraftResult:
    success: bool
    draft_id: str | None = None
    subject: str | None = None
    body: str | None = None
    action_items: list[dict[str, Any]] = field(default_factory=list)
    quality_score: int | None = None
    meeting_type: str | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cost_usd: float | None = None
    generation_duration_ms: int | None = None
    attempts: int = 0
    deduplicated: bool = False


def build_draft_context(meeting: Meeting, transcript: str) -> FollowUpContext:
    """
    Контекст промпта из встречи: имя хоста — локальная часть email.
    Участники — из payload встречи, иначе из префиксов реплик транскрипта.
    """
    host_email = meeting.host_email or ""
    host_name = host_email.split("@")[0] or "Host"
    participants = [p.get("name") for p in (meeting.participants or []) if p.get("name")]
    if not participants:
        participants = extract_participants(transcript)
    return FollowUpContext(
        meeting_topic=meeting.topic or "Meeting",
        meeting_date=format_meeting_date(meeting.start_time),
        host_name=host_name,
        host_email=host_email or None,
        transcript=transcript,
        participants=participants,
        sender_name=host_name,
    )


def _result_from_draft(d: Draft, *, deduplicated: bool = False) -> GenerateDraftResult:
    return GenerateDraftResult(
        success=d.status in {DraftStatus.generated, DraftStatus.sent},
        draft_id=d.id,
        subject=d.subject,
        body=d.body,
        action_items=list(d.action_items or []),
        quality_score=d.quality_score,
        meeting_type=d.meeting_type,
        error=d.error_message,
        input_tokens=d.input_tokens,
        output_tokens=d.output_tokens,
        cost_usd=d.cost_usd,
        generation_duration_ms=d.generation_duration_ms,
        attempts=d.retry_count,
        deduplicated=deduplicated,
    )


def _existing_draft(meeting_id: str, transcript_id: str | None) -> GenerateDraftResult | None:
    s = get_settings()
    with db_session() as session:
        repo = DraftRepository(session)
        done = repo.find_completed(meeting_id, transcript_id)
        if done is not None:
            log.info(
                "draft_dedup_existing",
                extra={"payload": {"meeting_id": meeting_id, "draft_id": done.id}},
            )
            return _result_from_draft(done, deduplicated=True)

        started_after = utc_now() - timedelta(seconds=int(s.draft_generating_stale_sec))
        in_flight = repo.find_in_flight(meeting_id, started_after=started_after)
        if in_flight is not None:
            log.info(
                "draft_generation_in_flight",
                extra={"payload": {"meeting_id": meeting_id, "draft_id": in_flight.id}},
            )
            return GenerateDraftResult(
                success=False, draft_id=in_flight.id, error=ERR_IN_FLIGHT, deduplicated=True
            )

        # протухшие маркеры закрываем: non-failed черновик у встречи только один
        abandoned = repo.fail_stale_generating(
            meeting_id, started_before=started_after, error=ERR_ABANDONED, now=utc_now()
        )
        if abandoned:
            log.warning(
                "draft_generating_abandoned",
                extra={"payload": {"meeting_id": meeting_id, "count": abandoned}},
            )
    return None


def _store_failed(
    draft_id: str | None,
    *,
    meeting_id: str,
    transcript_id: str | None,
    error: str,
    attempts: int,
    meeting_type: str | None = None,
    started_at: datetime | None = None,
) -> str:
    now = utc_now()
    with db_session() as session:
        repo = DraftRepository(session)
        d = repo.get(draft_id) if draft_id else None
        if d is None:
            d = Draft(
                meeting_id=meeting_id,
                transcript_id=transcript_id,
                generation_started_at=started_at or now,
            )
            repo.add(d)
        d.status = DraftStatus.failed
        d.error_message = error[:2000]
        d.retry_count = attempts
        d.meeting_type = meeting_type or d.meeting_type
        d.generation_completed_at = now
        d.updated_at = now
        session.flush()
        return d.id


def generate_draft(
    meeting_id: str,
    transcript_id: str | None,
    context: FollowUpContext,
    *,
    run: PipelineRun | None = None,
    provider: LLMProvider | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> GenerateDraftResult:
    s = get_settings()
    run = run or PipelineRun(service="draft")
    started = time.monotonic()
    log_ctx = {"meeting_id": meeting_id, "transcript_id": transcript_id, "run_id": run.run_id}

    existing = _existing_draft(meeting_id, transcript_id)
    if existing is not None:
        return existing

    # 1) пустой транскрипт: без вызова API
    if not (context.transcript or "").strip():
        draft_id = _store_failed(
            None,
            meeting_id=meeting_id,
            transcript_id=transcript_id,
            error=ERR_EMPTY_TRANSCRIPT,
            attempts=0,
        )
        record_draft_result(status=DraftStatus.failed.value, meeting_type=None, quality=None)
        log.warning("draft_empty_transcript", extra={"payload": {**log_ctx, "draft_id": draft_id}})
        return GenerateDraftResult(success=False, draft_id=draft_id, error=ERR_EMPTY_TRANSCRIPT)

    # 2) классификация
    with run.stage(Stage.MEETING_CLASSIFIED) as info:
        mt = classify_meeting(
            context.transcript, context.meeting_topic, rules=configured_rules()
        )
        info["meeting_type"] = mt.meeting_type
    context.meeting_type = context.meeting_type or mt.meeting_type
    context.detected_tone = context.detected_tone or mt.tone

    # 3) промпт
    user_prompt = build_user_prompt(context)

    # 4) маркер "в работе"
    generation_started_at = utc_now()
    with db_session() as session:
        d = Draft(
            meeting_id=meeting_id,
            transcript_id=transcript_id,
            status=DraftStatus.generating,
            model=s.llm_model_id,
            meeting_type=context.meeting_type,
            generation_started_at=generation_started_at,
        )
        DraftRepository(session).add(d)
        session.flush()
        draft_id = d.id

    # 5) LLM
    try:
        orchestrator = LLMOrchestrator(
            provider or get_llm_provider(), sleep=sleep, remaining_s=run.remaining_s
        )
        with run.stage(Stage.LLM_CALL) as info:
            out = orchestrator.generate(
                system=SYSTEM_PROMPT, user=user_prompt, context={**log_ctx, "draft_id": draft_id}
            )
            info["attempts"] = out.attempts
    except Exception as e:
        attempts = e.attempts if isinstance(e, LLMGenerationFailed) else 0
        error = str(e.message if isinstance(e, LLMGenerationFailed) else e)
        _store_failed(
            draft_id,
            meeting_id=meeting_id,
            transcript_id=transcript_id,
            error=error,
            attempts=attempts,
            meeting_type=context.meeting_type,
        )
        record_draft_result(
            status=DraftStatus.failed.value, meeting_type=context.meeting_type, quality=None
        )
        log.error(
            "draft_generation_failed",
            extra={
                "payload": {
                    **log_ctx,
                    "draft_id": draft_id,
                    "attempts": attempts,
                    "err": error[:200],
                }
            },
        )
        return GenerateDraftResult(
            success=False,
            draft_id=draft_id,
            error=error,
            meeting_type=context.meeting_type,
            attempts=attempts,
            generation_duration_ms=int((time.monotonic() - started) * 1000),
        )

    # 6-7) разбор и оценка
    llm = out.result
    parsed = parse_draft_response(llm.content)
    with run.stage(Stage.DRAFT_SCORED) as info:
        quality = score_draft(parsed, context.transcript)
        info["quality"] = quality.overall
    if not meets_quality_threshold(quality.overall, s.draft_quality_threshold):
        log.warning(
            "draft_below_quality_threshold",
            extra={
                "payload": {
                    **log_ctx,
                    "draft_id": draft_id,
                    "quality": quality.overall,
                    "threshold": s.draft_quality_threshold,
                    "issues": quality.issues[:5],
                }
            },
        )

    body = parsed.body + format_action_items(parsed.action_items)
    action_items = [a.to_dict() for a in parsed.action_items]
    cost = calculate_cost_usd(
        llm.input_tokens,
        llm.output_tokens,
        price_input_per_m=s.llm_price_input_per_m,
        price_output_per_m=s.llm_price_output_per_m,
    )
    duration_ms = int((time.monotonic() - started) * 1000)

    # 8) сохранение
    with run.stage(Stage.DRAFT_STORED), db_session() as session:
        d = DraftRepository(session).get(draft_id)
        now = utc_now()
        d.subject = parsed.subject
        d.body = body
        d.status = DraftStatus.generated
        d.model = llm.model or s.llm_model_id
        d.input_tokens = llm.input_tokens
        d.output_tokens = llm.output_tokens
        d.cost_usd = cost
        d.generation_completed_at = now
        d.generation_duration_ms = duration_ms
        d.quality_score = quality.overall
        d.quality_breakdown = quality.breakdown
        d.quality_issues = quality.issues
        d.quality_suggestions = quality.suggestions
        d.meeting_type = context.meeting_type
        d.tone_used = parsed.tone_used or context.detected_tone
        d.action_items = action_items
        d.key_points_referenced = parsed.key_points_referenced
        d.meeting_summary = parsed.meeting_summary or None
        d.key_topics = parsed.key_topics
        d.key_decisions = parsed.key_decisions
        d.error_message = None
        d.retry_count = out.attempts
        d.updated_at = now

    record_draft_result(
        status=DraftStatus.generated.value,
        meeting_type=context.meeting_type,
        quality=quality.overall,
    )
    log.info(
        "draft_generated",
        extra={
            "payload": {
                **log_ctx,
                "draft_id": draft_id,
                "meeting_type": context.meeting_type,
                "quality": quality.overall,
                "attempts": out.attempts,
                "input_tokens": llm.input_tokens,
                "output_tokens": llm.output_tokens,
                "cost_usd": cost,
                "duration_ms": duration_ms,
            }
        },
    )
    return GenerateDraftResult(
        success=True,
        draft_id=draft_id,
        subject=parsed.subject,
        body=body,
        action_items=action_items,
        quality_score=quality.overall,
        meeting_type=context.meeting_type,
        input_tokens=llm.input_tokens,
        output_tokens=llm.output_tokens,
        cost_usd=cost,
        generation_duration_ms=duration_ms,
        attempts=out.attempts,
    )
