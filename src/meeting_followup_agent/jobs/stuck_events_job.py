"""
Stuck events job.

Назначение:
- поиск RawEvent, застрявших в received/processing (упавший процесс,
  потерянная задача очереди, недоступный Redis при приёме)
- повторная обработка ограниченной пачкой
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.domain.enums import HandleAction
from meeting_followup_agent.services.event_service import handle_raw_event
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.repositories import RawEventRepository

log = get_project_logger()


@dataclass
class StuckEventsResult:
    scanned: int = 0
    processed: int = 0
    failed: int = 0
    raw_event_ids: list[str] = field(default_factory=list)


def run(*, limit: int | None = None) -> StuckEventsResult | None:
    settings = get_settings()
    if not settings.stuck_events_enabled:
        log.info("stuck_events_job_skipped", extra={"payload": {"reason": "disabled"}})
        return None

    batch_limit = int(limit if limit is not None else settings.stuck_event_batch_limit)
    updated_before = utc_now() - timedelta(seconds=int(settings.stuck_event_after_sec))
    log.info(
        "stuck_events_job_started",
        extra={"payload": {"limit": batch_limit, "after_sec": settings.stuck_event_after_sec}},
    )

    with db_session() as session:
        stuck = RawEventRepository(session).list_stuck(
            updated_before=updated_before,
            max_attempts=int(settings.stuck_event_max_attempts),
            limit=max(1, batch_limit),
        )
        ids = [ev.id for ev in stuck]

    result = StuckEventsResult(scanned=len(ids), raw_event_ids=ids)
    for raw_event_id in ids:
        try:
            handled = handle_raw_event(raw_event_id)
        except Exception as e:
            result.failed += 1
            log.warning(
                "stuck_event_retry_failed",
                extra={"payload": {"raw_event_id": raw_event_id, "err": str(e)[:300]}},
            )
            continue
        if handled.action == HandleAction.failed:
            result.failed += 1
        else:
            result.processed += 1

    log.info(
        "stuck_events_job_finished",
        extra={
            "payload": {
                "scanned": result.scanned,
                "processed": result.processed,
                "failed": result.failed,
            }
        },
    )
    return result
