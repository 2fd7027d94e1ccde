from __future__ import annotations

import json

import pytest

from apps.worker_events import main as worker
from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.contracts.webhook_events import RawEventTask
from meeting_followup_agent.domain.enums import HandleAction
from meeting_followup_agent.queue import dispatcher, retry
from meeting_followup_agent.queue.dispatcher import Q_EVENTS, enqueue_raw_event


class _FakeRedis:
    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}

    def lpush(self, name: str, value: str) -> None:
        self.lists.setdefault(name, []).insert(0, value)


@pytest.fixture()
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> _FakeRedis:
    fake = _FakeRedis()
    monkeypatch.setattr(dispatcher, "redis_client", lambda: fake)
    monkeypatch.setattr(retry, "redis_client", lambda: fake)
    return fake


@pytest.fixture()
def redis_mode():
    s = get_settings()
    snapshot = s.queue_mode
    s.queue_mode = "redis"
    try:
        yield s
    finally:
        s.queue_mode = snapshot


def test_enqueue_in_redis_mode_pushes_task(redis_mode, fake_redis) -> None:
    assert enqueue_raw_event("evt-1") is None

    [raw] = fake_redis.lists[Q_EVENTS]
    task = RawEventTask.from_json(raw)
    assert task.raw_event_id == "evt-1"
    assert task.schema_version == "v1"
    assert task.attempts == 0


def test_enqueue_inline_handles_immediately(store_raw_event, make_envelope) -> None:
    rid = store_raw_event(make_envelope("meeting.ended"))
    result = enqueue_raw_event(rid)
    assert result.action == HandleAction.created


def test_process_task_handles_event(store_raw_event, make_envelope) -> None:
    rid = store_raw_event(make_envelope("meeting.ended"))

    result = worker.process_task(RawEventTask.new(rid).to_json())

    assert result.action == HandleAction.created


def test_process_task_ignores_malformed_task() -> None:
    assert worker.process_task("not json") is None
    assert worker.process_task(json.dumps({"schema_version": "v1"})) is None


def test_process_task_requeues_then_dead_letters(
    fake_redis, monkeypatch: pytest.MonkeyPatch
) -> None:
    def boom(raw_event_id: str):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(worker, "handle_raw_event", boom)
    monkeypatch.setattr(retry.time, "sleep", lambda _: None)

    raw = RawEventTask.new("evt-1").to_json()
    for _ in range(4):
        assert worker.process_task(raw) is None
        pending = fake_redis.lists.get(Q_EVENTS) or []
        if pending:
            raw = pending.pop()

    requeued = RawEventTask.from_json(fake_redis.lists[f"{Q_EVENTS}:dlq"][0])
    assert requeued.raw_event_id == "evt-1"
    assert requeued.attempts == 4
