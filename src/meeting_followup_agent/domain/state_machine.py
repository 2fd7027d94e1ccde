"""
Машины состояний RawEvent и Meeting.

Назначение:
- Централизованные правила переходов статусов
- Монотонность статуса встречи при повторной/неупорядоченной доставке событий
- Основа для идемпотентной обработки
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import MeetingStatus, RawEventStatus


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    status: MeetingStatus | RawEventStatus | None = None
    reason: str | None = None


# =============================================================================
# RAW EVENT
# =============================================================================
_EVENT_TRANSITIONS: dict[RawEventStatus, set[RawEventStatus]] = {
    RawEventStatus.received: {RawEventStatus.processing},
    # processing -> processing: повторный захват зависшего события оператором/джобой
    RawEventStatus.processing: {
        RawEventStatus.processing,
        RawEventStatus.processed,
        RawEventStatus.failed,
    },
    RawEventStatus.failed: {RawEventStatus.processing},
    RawEventStatus.processed: set(),
}


def can_transition_event(current: RawEventStatus, target: RawEventStatus) -> bool:
    return target in _EVENT_TRANSITIONS.get(RawEventStatus(current), set())


def transition_event(current: RawEventStatus, target: RawEventStatus) -> TransitionResult:
    """
    Правила:
    - received -> processing -> processed | failed
    - failed / зависший processing можно перезапустить
    - processed терминален: повторная обработка — no-op
    """
    current = RawEventStatus(current)
    if current == RawEventStatus.processed:
        return TransitionResult(ok=False, status=current, reason="already_processed")
    if not can_transition_event(current, target):
        return TransitionResult(ok=False, status=current, reason="invalid_transition")
    return TransitionResult(ok=True, status=target)


# =============================================================================
# MEETING
# =============================================================================
_MEETING_RANK: dict[MeetingStatus, int] = {
    MeetingStatus.pending: 0,
    MeetingStatus.processing: 1,
    MeetingStatus.ready: 2,
    MeetingStatus.completed: 3,
}


def advance_meeting_status(
    current: MeetingStatus | None, target: MeetingStatus
) -> TransitionResult:
    """
    Статус встречи двигается только вперёд:
    pending < processing < ready < completed.

    - failed ставится из любого состояния, кроме completed
    - из failed выводит только успешная стадия транскрипта (ready/completed)
    - устаревшее событие (например, meeting.ended после ready) статус не меняет
    """
    target = MeetingStatus(target)
    if current is None:
        return TransitionResult(ok=True, status=target)

    current = MeetingStatus(current)
    if current == target:
        return TransitionResult(ok=True, status=current, reason="unchanged")

    if target == MeetingStatus.failed:
        if current == MeetingStatus.completed:
            return TransitionResult(ok=False, status=current, reason="terminal_completed")
        return TransitionResult(ok=True, status=target)

    if current == MeetingStatus.failed:
        if _MEETING_RANK[target] >= _MEETING_RANK[MeetingStatus.ready]:
            return TransitionResult(ok=True, status=target, reason="recovered")
        return TransitionResult(ok=False, status=current, reason="stale_event")

    if _MEETING_RANK[target] < _MEETING_RANK[current]:
        return TransitionResult(ok=False, status=current, reason="regression_blocked")

    return TransitionResult(ok=True, status=target)
