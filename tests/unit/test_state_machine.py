from __future__ import annotations

from meeting_followup_agent.domain.enums import MeetingStatus, RawEventStatus
from meeting_followup_agent.domain.state_machine import advance_meeting_status, transition_event


def test_event_received_goes_processing() -> None:
    r = transition_event(RawEventStatus.received, RawEventStatus.processing)
    assert r.ok is True
    assert r.status == RawEventStatus.processing


def test_event_processed_is_terminal() -> None:
    r = transition_event(RawEventStatus.processed, RawEventStatus.processing)
    assert r.ok is False
    assert r.reason == "already_processed"


def test_failed_and_stuck_events_can_be_reclaimed() -> None:
    assert transition_event(RawEventStatus.failed, RawEventStatus.processing).ok is True
    assert transition_event(RawEventStatus.processing, RawEventStatus.processing).ok is True


def test_event_cannot_skip_processing() -> None:
    r = transition_event(RawEventStatus.received, RawEventStatus.processed)
    assert r.ok is False
    assert r.reason == "invalid_transition"


def test_meeting_ended_after_ready_does_not_regress() -> None:
    r = advance_meeting_status(MeetingStatus.ready, MeetingStatus.pending)
    assert r.ok is False
    assert r.status == MeetingStatus.ready
    assert r.reason == "regression_blocked"


def test_meeting_moves_forward() -> None:
    assert advance_meeting_status(None, MeetingStatus.pending).status == MeetingStatus.pending
    assert advance_meeting_status(MeetingStatus.pending, MeetingStatus.ready).ok is True
    assert advance_meeting_status(MeetingStatus.ready, MeetingStatus.completed).ok is True


def test_failed_meeting_recovers_only_via_ready() -> None:
    assert advance_meeting_status(MeetingStatus.processing, MeetingStatus.failed).ok is True
    assert advance_meeting_status(MeetingStatus.failed, MeetingStatus.pending).ok is False
    r = advance_meeting_status(MeetingStatus.failed, MeetingStatus.ready)
    assert r.ok is True
    assert r.reason == "recovered"


def test_completed_meeting_is_not_failed_later() -> None:
    r = advance_meeting_status(MeetingStatus.completed, MeetingStatus.failed)
    assert r.ok is False
    assert r.status == MeetingStatus.completed
