from __future__ import annotations

from datetime import timedelta

import pytest

from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.domain.enums import MeetingStatus, RawEventStatus
from meeting_followup_agent.services.meeting_service import MeetingLeaseBusy, meeting_lease
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.models import Meeting, RawEvent
from meeting_followup_agent.storage.repositories import MeetingRepository, RawEventRepository


def test_db_session_commits_and_rolls_back() -> None:
    with db_session() as s:
        s.add(Meeting(external_meeting_id="committed", participants=[]))

    with pytest.raises(RuntimeError):
        with db_session() as s:
            s.add(Meeting(external_meeting_id="rolled-back", participants=[]))
            s.flush()
            raise RuntimeError("boom")

    with db_session() as s:
        repo = MeetingRepository(s)
        m = repo.get_by_external_id("committed")
        assert m is not None
        assert m.status == MeetingStatus.pending
        assert repo.get_by_external_id("rolled-back") is None


def test_raw_event_insert_is_idempotent() -> None:
    with db_session() as s:
        repo = RawEventRepository(s)
        first, created = repo.add_if_absent(
            RawEvent(external_event_id="evt-1", event_type="meeting.ended", payload={})
        )
        again, created_again = repo.add_if_absent(
            RawEvent(external_event_id="evt-1", event_type="meeting.ended", payload={"x": 1})
        )
        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert first.status == RawEventStatus.received


def test_claim_does_not_reopen_processed_event() -> None:
    with db_session() as s:
        ev = RawEvent(external_event_id="evt-2", event_type="meeting.ended", payload={})
        s.add(ev)
        s.flush()
        rid = ev.id

    with db_session() as s:
        repo = RawEventRepository(s)
        assert repo.claim(rid, now=utc_now()) is True
        repo.mark_processed(rid, now=utc_now(), external_meeting_id="m-1")

    with db_session() as s:
        repo = RawEventRepository(s)
        assert repo.claim(rid, now=utc_now()) is False
        repo.mark_failed(rid, error="late failure", now=utc_now())

    with db_session() as s:
        ev = RawEventRepository(s).get(rid)
        assert ev.status == RawEventStatus.processed
        assert ev.attempts == 1
        assert ev.external_meeting_id == "m-1"


def test_meeting_lease_is_exclusive_and_expires() -> None:
    with db_session() as s:
        m = Meeting(external_meeting_id="lease", participants=[])
        s.add(m)
        s.flush()
        meeting_id = m.id

    with meeting_lease(meeting_id) as token:
        assert token
        with pytest.raises(MeetingLeaseBusy):
            with meeting_lease(meeting_id):
                pass

    # после выхода аренда снята
    with meeting_lease(meeting_id):
        pass

    with db_session() as s:
        MeetingRepository(s).try_acquire_lease(
            meeting_id,
            token="dead-owner",
            now=utc_now(),
            until=utc_now() - timedelta(seconds=1),
        )
    # просроченную аренду можно перехватить
    with meeting_lease(meeting_id):
        pass
    with db_session() as s:
        assert MeetingRepository(s).get(meeting_id).pipeline_lock_token is None
