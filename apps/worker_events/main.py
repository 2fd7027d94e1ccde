"""
Worker Events.

Алгоритм:
- BRPOP из q:events
- задача = id RawEvent (payload живёт в БД)
- handle_raw_event: машина состояний события (встреча -> транскрипт -> черновик)

Важно:
- бизнес-ошибки фиксируются в статусе RawEvent/Meeting/Draft и не ретраятся здесь
- requeue только если обработка не смогла начаться (БД/Redis недоступны)
"""

from __future__ import annotations

import time

from meeting_followup_agent.common.logging import get_project_logger, setup_logging
from meeting_followup_agent.contracts.webhook_events import RawEventTask
from meeting_followup_agent.queue.dispatcher import Q_EVENTS
from meeting_followup_agent.queue.redis import redis_client
from meeting_followup_agent.queue.retry import requeue_with_backoff
from meeting_followup_agent.services.event_service import HandleResult, handle_raw_event

log = get_project_logger()


def process_task(raw: str) -> HandleResult | None:
    try:
        task = RawEventTask.from_json(raw)
    except (ValueError, KeyError, TypeError) as e:
        log.error(
            "worker_events_bad_task", extra={"payload": {"err": str(e)[:250], "raw": raw[:300]}}
        )
        return None

    try:
        return handle_raw_event(task.raw_event_id)
    except Exception as e:
        log.error(
            "worker_events_error",
            extra={"payload": {"raw_event_id": task.raw_event_id, "err": str(e)[:250]}},
        )
        requeue_with_backoff(queue_name=Q_EVENTS, task=task, max_attempts=3, backoff_sec=1)
        return None


def run_loop() -> None:
    r = redis_client()
    log.info("worker_events_started", extra={"payload": {"queue": Q_EVENTS}})

    while True:
        item = r.brpop(Q_EVENTS, timeout=5)
        if not item:
            continue
        _, raw = item
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        process_task(raw)


def main() -> None:
    setup_logging()
    while True:
        try:
            run_loop()
        except Exception as e:
            log.error("worker_events_fatal", extra={"payload": {"err": str(e)[:250]}})
            time.sleep(2)


if __name__ == "__main__":
    main()
