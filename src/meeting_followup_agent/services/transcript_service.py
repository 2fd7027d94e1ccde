"""
Стадия транскрипта: download -> parse -> persist.

Назначение:
- один Transcript на встречу (lookup-or-insert)
- готовый транскрипт повторно не скачиваем
- временные сбои загрузки повторяются с backoff в пределах бюджета прогона
- ошибка загрузки/разбора фиксируется в Transcript (failed + last_fetch_error)
- после сохранения встреча двигается в ready (в т.ч. восстановление из failed)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import DBAPIError

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ErrCode, LLMTimeoutError, ProviderError
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.run_context import PipelineRun, Stage
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.domain.enums import MeetingStatus, TranscriptStatus
from meeting_followup_agent.domain.retry import MIN_ATTEMPT_SEC, RetryState, next_attempt_fits
from meeting_followup_agent.llm.bounded import call_bounded
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.repositories import MeetingRepository, TranscriptRepository
from meeting_followup_agent.transcript.downloader import TranscriptDownloader
from meeting_followup_agent.transcript.parser import parse_vtt

from .meeting_service import set_meeting_status

log = get_project_logger()

# запас сверх таймаута транспорта: requests сам должен уложиться раньше
DOWNLOAD_BOUND_SLACK_SEC = 2.0


@dataclass
class StoredTranscript:
    transcript_id: str
    content: str
    word_count: int
    segment_count: int
    reused: bool = False


def _begin_fetch(meeting_id: str) -> StoredTranscript | None:
    with db_session() as session:
        t = TranscriptRepository(session).ensure_for_meeting(meeting_id)
        if t.status == TranscriptStatus.ready and t.content:
            return StoredTranscript(
                transcript_id=t.id,
                content=t.content,
                word_count=t.word_count,
                segment_count=len(t.speaker_segments or []),
                reused=True,
            )
        t.status = TranscriptStatus.fetching
        t.fetch_attempts = (t.fetch_attempts or 0) + 1
        t.updated_at = utc_now()

        m = MeetingRepository(session).get(meeting_id)
        if m is not None:
            set_meeting_status(m, MeetingStatus.processing)
    return None


def _record_fetch_failure(meeting_id: str, error: str) -> None:
    with db_session() as session:
        t = TranscriptRepository(session).get_by_meeting(meeting_id)
        if t is None:
            return
        t.status = TranscriptStatus.failed
        t.last_fetch_error = error[:2000]
        t.updated_at = utc_now()


def _mark_meeting_ready(meeting_id: str) -> None:
    # транскрипт уже сохранён: отставание статуса встречи не откатывает результат
    try:
        with db_session() as session:
            m = MeetingRepository(session).get(meeting_id)
            if m is not None:
                set_meeting_status(m, MeetingStatus.ready)
    except DBAPIError as e:
        log.error(
            "status_update_lagged",
            extra={
                "payload": {"meeting_id": meeting_id, "target": "ready", "err": str(e)[:200]}
            },
        )


def _download_once(
    downloader: TranscriptDownloader, url: str, token: str, *, timeout_s: float
) -> str:
    try:
        return call_bounded(
            lambda: downloader.download(url, token),
            timeout_s=timeout_s,
            name="transcript_download",
        )
    except LLMTimeoutError as e:
        raise ProviderError(
            ErrCode.TRANSCRIPT_DOWNLOAD_ERROR,
            "Таймаут загрузки транскрипта",
            {"timeout_s": e.timeout_s},
            retryable=True,
        ) from e


def _download(
    downloader: TranscriptDownloader,
    url: str,
    token: str,
    *,
    meeting_id: str,
    run: PipelineRun,
    sleep: Callable[[float], None],
) -> tuple[str, int]:
    """
    Загрузка с ретраями: временные сбои (таймаут, 429, 5xx, сеть) повторяются
    с backoff, фатальные (401/403/404) обрывают сразу. Таймаут попытки и паузы
    режутся остатком бюджета прогона. Возвращает (vtt, число попыток).
    """
    s = get_settings()
    state = RetryState(
        max_attempts=int(s.transcript_download_max_attempts),
        base_delay_ms=int(s.transcript_download_backoff_ms),
    )
    while True:
        left = run.remaining_s()
        if left < MIN_ATTEMPT_SEC:
            raise ProviderError(
                ErrCode.TRANSCRIPT_DOWNLOAD_ERROR,
                "Бюджет прогона исчерпан до загрузки транскрипта",
                {"attempts": state.attempt, "last_error": state.last_error},
                retryable=True,
            )

        attempt = state.start_attempt()
        try:
            vtt = _download_once(
                downloader,
                url,
                token,
                timeout_s=run.cap_timeout(float(downloader.timeout_s) + DOWNLOAD_BOUND_SLACK_SEC),
            )
        except ProviderError as e:
            delay = state.fail(e.message[:500], retryable=e.retryable)
            log.warning(
                "transcript_download_attempt_failed",
                extra={
                    "payload": {
                        "meeting_id": meeting_id,
                        "attempt": attempt,
                        "retryable": e.retryable,
                        "err": str(e)[:200],
                    }
                },
            )
            if delay is None:
                raise
            if not next_attempt_fits(delay, run.remaining_s()):
                state.give_up()
                raise
            sleep(delay)
            continue

        state.succeed()
        return vtt, attempt


def fetch_and_store_transcript(
    meeting_id: str,
    *,
    download_url: str,
    token: str,
    run: PipelineRun,
    downloader: TranscriptDownloader | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> StoredTranscript:
    reused = _begin_fetch(meeting_id)
    if reused is not None:
        log.info(
            "transcript_reused",
            extra={"payload": {"meeting_id": meeting_id, "transcript_id": reused.transcript_id}},
        )
        _mark_meeting_ready(meeting_id)
        return reused

    downloader = downloader or TranscriptDownloader.from_settings()
    try:
        with run.stage(Stage.TRANSCRIPT_DOWNLOADED, meeting_id=meeting_id) as info:
            vtt, attempts = _download(
                downloader, download_url, token, meeting_id=meeting_id, run=run, sleep=sleep
            )
            info["content_length"] = len(vtt)
            info["attempts"] = attempts

        with run.stage(Stage.TRANSCRIPT_PARSED) as info:
            parsed = parse_vtt(vtt)
            info["word_count"] = parsed.word_count
            info["segment_count"] = len(parsed.segments)

        with run.stage(Stage.TRANSCRIPT_STORED), db_session() as session:
            t = TranscriptRepository(session).ensure_for_meeting(meeting_id)
            t.content = parsed.full_text
            t.vtt_content = vtt
            t.speaker_segments = [s.to_dict() for s in parsed.segments]
            t.word_count = parsed.word_count
            t.status = TranscriptStatus.ready
            t.last_fetch_error = None
            t.updated_at = utc_now()
            session.flush()
            stored = StoredTranscript(
                transcript_id=t.id,
                content=parsed.full_text,
                word_count=parsed.word_count,
                segment_count=len(parsed.segments),
            )
    except Exception as e:
        log.error(
            "transcript_stage_failed",
            extra={"payload": {"meeting_id": meeting_id, "err": str(e)[:200]}},
        )
        _record_fetch_failure(meeting_id, str(e))
        raise

    log.info(
        "transcript_stored",
        extra={
            "payload": {
                "meeting_id": meeting_id,
                "transcript_id": stored.transcript_id,
                "word_count": stored.word_count,
                "segment_count": stored.segment_count,
            }
        },
    )

    _mark_meeting_ready(meeting_id)
    return stored
