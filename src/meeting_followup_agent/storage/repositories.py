"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
- Условные UPDATE (compare-and-set) возвращают bool: применилось или нет
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, desc, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meeting_followup_agent.domain.enums import DraftStatus, RawEventStatus

from .models import Draft, Meeting, RawEvent, Transcript


# =============================================================================
# RAW EVENT REPOSITORY
# =============================================================================
class RawEventRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, raw_event_id: str) -> RawEvent | None:
        return self.session.get(RawEvent, raw_event_id)

    def get_by_external_id(self, external_event_id: str) -> RawEvent | None:
        return self.session.scalars(
            select(RawEvent).where(RawEvent.external_event_id == external_event_id)
        ).one_or_none()

    def add_if_absent(self, event: RawEvent) -> tuple[RawEvent, bool]:
        """
        Идемпотентная вставка по external_event_id.
        Возвращает (event, created).
        """
        existing = self.get_by_external_id(event.external_event_id)
        if existing is not None:
            return existing, False
        try:
            with self.session.begin_nested():
                self.session.add(event)
        except IntegrityError:
            existing = self.get_by_external_id(event.external_event_id)
            if existing is None:
                raise
            return existing, False
        return event, True

    def claim(self, raw_event_id: str, *, now: datetime) -> bool:
        """
        Атомарно переводит событие в processing, если оно ещё не processed.
        """
        res = self.session.execute(
            update(RawEvent)
            .where(RawEvent.id == raw_event_id, RawEvent.status != RawEventStatus.processed)
            .values(
                status=RawEventStatus.processing,
                attempts=RawEvent.attempts + 1,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def mark_processed(
        self, raw_event_id: str, *, now: datetime, external_meeting_id: str | None = None
    ) -> None:
        values: dict = {
            "status": RawEventStatus.processed,
            "processed_at": now,
            "error_message": None,
            "updated_at": now,
        }
        if external_meeting_id:
            values["external_meeting_id"] = external_meeting_id
        self.session.execute(
            update(RawEvent)
            .where(RawEvent.id == raw_event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def mark_failed(self, raw_event_id: str, *, error: str, now: datetime) -> None:
        self.session.execute(
            update(RawEvent)
            .where(RawEvent.id == raw_event_id, RawEvent.status != RawEventStatus.processed)
            .values(status=RawEventStatus.failed, error_message=error, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    def list_stuck(
        self, *, updated_before: datetime, max_attempts: int, limit: int = 50
    ) -> list[RawEvent]:
        """
        received/processing, не обновлявшиеся дольше порога.
        """
        return list(
            self.session.scalars(
                select(RawEvent)
                .where(
                    RawEvent.status.in_([RawEventStatus.received, RawEventStatus.processing]),
                    RawEvent.updated_at < updated_before,
                    RawEvent.attempts < max_attempts,
                )
                .order_by(RawEvent.received_at)
                .limit(max(1, min(limit, 500)))
            )
        )


# =============================================================================
# MEETING REPOSITORY
# =============================================================================
class MeetingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, meeting_id: str) -> Meeting | None:
        return self.session.get(Meeting, meeting_id)

    def get_by_external_id(self, external_meeting_id: str) -> Meeting | None:
        return self.session.scalars(
            select(Meeting).where(Meeting.external_meeting_id == external_meeting_id)
        ).one_or_none()

    def ensure(self, *, external_meeting_id: str, platform: str = "zoom") -> tuple[Meeting, bool]:
        """Гарантирует, что Meeting существует.
        Идемпотентно: если уже есть — вернёт существующий. Возвращает (meeting, created).
        """
        m = self.get_by_external_id(external_meeting_id)
        if m is not None:
            return m, False
        m = Meeting(external_meeting_id=external_meeting_id, platform=platform, participants=[])
        try:
            with self.session.begin_nested():
                self.session.add(m)
        except IntegrityError:
            existing = self.get_by_external_id(external_meeting_id)
            if existing is None:
                raise
            return existing, False
        return m, True

    def save(self, meeting: Meeting) -> None:
        self.session.add(meeting)

    def try_acquire_lease(
        self,
        meeting_id: str,
        *,
        token: str,
        now: datetime,
        until: datetime,
        owner: str | None = None,
    ) -> bool:
        res = self.session.execute(
            update(Meeting)
            .where(
                Meeting.id == meeting_id,
                or_(
                    Meeting.pipeline_lock_token.is_(None),
                    Meeting.pipeline_locked_until.is_(None),
                    Meeting.pipeline_locked_until < now,
                ),
            )
            .values(
                pipeline_lock_token=token, pipeline_lock_owner=owner, pipeline_locked_until=until
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def release_lease(self, meeting_id: str, *, token: str) -> bool:
        res = self.session.execute(
            update(Meeting)
            .where(Meeting.id == meeting_id, Meeting.pipeline_lock_token == token)
            .values(pipeline_lock_token=None, pipeline_lock_owner=None, pipeline_locked_until=None)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def lease_owner(self, meeting_id: str) -> str | None:
        return self.session.scalars(
            select(Meeting.pipeline_lock_owner).where(Meeting.id == meeting_id)
        ).first()


# =============================================================================
# TRANSCRIPT REPOSITORY
# =============================================================================
class TranscriptRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, transcript_id: str) -> Transcript | None:
        return self.session.get(Transcript, transcript_id)

    def get_by_meeting(self, meeting_id: str) -> Transcript | None:
        return self.session.scalars(
            select(Transcript).where(Transcript.meeting_id == meeting_id)
        ).one_or_none()

    def ensure_for_meeting(self, meeting_id: str, *, source: str = "zoom") -> Transcript:
        """
        lookup-or-insert: один транскрипт на встречу.
        """
        t = self.get_by_meeting(meeting_id)
        if t is not None:
            return t
        t = Transcript(meeting_id=meeting_id, source=source, speaker_segments=[])
        try:
            with self.session.begin_nested():
                self.session.add(t)
        except IntegrityError:
            existing = self.get_by_meeting(meeting_id)
            if existing is None:
                raise
            return existing
        return t


# =============================================================================
# DRAFT REPOSITORY
# =============================================================================
class DraftRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, draft_id: str) -> Draft | None:
        return self.session.get(Draft, draft_id)

    def add(self, draft: Draft) -> None:
        self.session.add(draft)

    def list_for_meeting(self, meeting_id: str) -> list[Draft]:
        return list(
            self.session.scalars(
                select(Draft).where(Draft.meeting_id == meeting_id).order_by(desc(Draft.created_at))
            )
        )

    def current_for_meeting(self, meeting_id: str) -> Draft | None:
        """
        "Текущий" черновик: последний не-failed по created_at.
        """
        return self.session.scalars(
            select(Draft)
            .where(Draft.meeting_id == meeting_id, Draft.status != DraftStatus.failed)
            .order_by(desc(Draft.created_at))
            .limit(1)
        ).first()

    def find_completed(self, meeting_id: str, transcript_id: str | None) -> Draft | None:
        return self.session.scalars(
            select(Draft)
            .where(
                Draft.meeting_id == meeting_id,
                Draft.transcript_id == transcript_id,
                Draft.status.in_([DraftStatus.generated, DraftStatus.sent]),
            )
            .order_by(desc(Draft.created_at))
            .limit(1)
        ).first()

    def fail_stale_generating(
        self, meeting_id: str, *, started_before: datetime, error: str, now: datetime
    ) -> int:
        res = self.session.execute(
            update(Draft)
            .where(
                Draft.meeting_id == meeting_id,
                Draft.status == DraftStatus.generating,
                or_(
                    Draft.generation_started_at.is_(None),
                    Draft.generation_started_at < started_before,
                ),
            )
            .values(
                status=DraftStatus.failed,
                error_message=error,
                generation_completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def find_in_flight(self, meeting_id: str, *, started_after: datetime) -> Draft | None:
        return self.session.scalars(
            select(Draft)
            .where(
                and_(
                    Draft.meeting_id == meeting_id,
                    Draft.status == DraftStatus.generating,
                    Draft.generation_started_at >= started_after,
                )
            )
            .order_by(desc(Draft.created_at))
            .limit(1)
        ).first()
