"""
Сервисный слой: управление встречами.

Назначение:
- upsert встречи по внешнему id без затирания уже известных полей
- продвижение статуса только вперёд (domain/state_machine.py)
- аренда (lease) встречи на время дорогих стадий пайплайна
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy.orm import Session

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import ConflictError
from meeting_followup_agent.common.ids import new_lease_token
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.connectors.zoom.payloads import (
    DEFAULT_HOST_EMAIL,
    DEFAULT_TOPIC,
    MeetingFields,
)
from meeting_followup_agent.domain.enums import MeetingStatus
from meeting_followup_agent.domain.state_machine import TransitionResult, advance_meeting_status
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.models import Meeting
from meeting_followup_agent.storage.repositories import MeetingRepository

log = get_project_logger()

# Значения-заглушки платформы не должны затирать реальные данные
_PLACEHOLDERS = {DEFAULT_HOST_EMAIL, DEFAULT_TOPIC}


class MeetingLeaseBusy(ConflictError):
    def __init__(self, meeting_id: str, owner: str | None = None) -> None:
        super().__init__(
            "Пайплайн встречи уже выполняется", {"meeting_id": meeting_id, "owner": owner}
        )
        self.owner = owner


def _merge(current, new):
    """Новое значение побеждает, только если оно содержательное."""
    if new is None or new == "" or new == []:
        return current
    if isinstance(new, str) and new in _PLACEHOLDERS and current:
        return current
    return new


def apply_meeting_fields(meeting: Meeting, fields: MeetingFields) -> None:
    meeting.host_email = _merge(meeting.host_email, fields.host_email)
    meeting.topic = _merge(meeting.topic, fields.topic)
    meeting.start_time = _merge(meeting.start_time, fields.start_time)
    meeting.end_time = _merge(meeting.end_time, fields.end_time)
    meeting.duration = _merge(meeting.duration, fields.duration)
    meeting.participants = _merge(meeting.participants or [], fields.participants)


def set_meeting_status(meeting: Meeting, target: MeetingStatus) -> TransitionResult:
    res = advance_meeting_status(meeting.status, target)
    if res.ok:
        meeting.status = res.status
        meeting.updated_at = utc_now()
    else:
        log.info(
            "meeting_status_not_advanced",
            extra={
                "payload": {
                    "meeting_id": meeting.id,
                    "current": getattr(meeting.status, "value", meeting.status),
                    "target": target.value,
                    "reason": res.reason,
                }
            },
        )
    return res


def upsert_meeting(
    session: Session,
    fields: MeetingFields,
    *,
    raw_event_id: str | None = None,
    platform: str = "zoom",
    recording_url: str | None = None,
    transcript_url: str | None = None,
    target_status: MeetingStatus | None = None,
) -> tuple[Meeting, bool]:
    """
    Возвращает (meeting, created).
    Статус новой встречи — pending, пока не пришла информация о записи.
    """
    if not fields.external_meeting_id:
        raise ValueError("external_meeting_id is required")

    repo = MeetingRepository(session)
    meeting, created = repo.ensure(
        external_meeting_id=fields.external_meeting_id, platform=platform
    )
    if created or meeting.status is None:
        meeting.status = MeetingStatus.pending

    apply_meeting_fields(meeting, fields)
    meeting.recording_download_url = recording_url or meeting.recording_download_url
    meeting.transcript_download_url = transcript_url or meeting.transcript_download_url
    if raw_event_id:
        meeting.last_event_id = raw_event_id
    meeting.updated_at = utc_now()

    if target_status is not None:
        set_meeting_status(meeting, target_status)

    repo.save(meeting)
    session.flush()
    log.info(
        "meeting_upserted",
        extra={
            "payload": {
                "meeting_id": meeting.id,
                "external_meeting_id": meeting.external_meeting_id,
                "created": created,
                "status": meeting.status.value,
            }
        },
    )
    return meeting, created


def mark_meeting_failed(meeting_id: str, *, reason: str) -> None:
    with db_session() as session:
        m = MeetingRepository(session).get(meeting_id)
        if m is None:
            return
        res = set_meeting_status(m, MeetingStatus.failed)
        if res.ok:
            log.warning(
                "meeting_marked_failed",
                extra={"payload": {"meeting_id": meeting_id, "reason": reason[:200]}},
            )


def advance_meeting(meeting_id: str, target: MeetingStatus) -> TransitionResult | None:
    with db_session() as session:
        m = MeetingRepository(session).get(meeting_id)
        if m is None:
            return None
        return set_meeting_status(m, target)


@contextmanager
def meeting_lease(
    meeting_id: str, *, owner: str | None = None, ttl_sec: int | None = None
) -> Iterator[str]:
    """
    Аренда встречи через compare-and-set в БД.
    owner (raw_event_id) сохраняется рядом с токеном.
    Аренда занята живым владельцем: MeetingLeaseBusy с его owner.
    Снимаем только свой токен.
    """
    ttl = int(ttl_sec or get_settings().pipeline_lease_ttl_sec)
    token = new_lease_token()
    now = utc_now()
    with db_session() as session:
        repo = MeetingRepository(session)
        acquired = repo.try_acquire_lease(
            meeting_id, token=token, now=now, until=now + timedelta(seconds=ttl), owner=owner
        )
        holder = None if acquired else repo.lease_owner(meeting_id)
    if not acquired:
        raise MeetingLeaseBusy(meeting_id, owner=holder)

    try:
        yield token
    finally:
        try:
            with db_session() as session:
                MeetingRepository(session).release_lease(meeting_id, token=token)
        except Exception as e:
            log.warning(
                "meeting_lease_release_failed",
                extra={"payload": {"meeting_id": meeting_id, "error": str(e)[:200]}},
            )
