"""
Worker Stuck Events.

Назначение:
- периодически запускать stuck_events_job
- дообрабатывать события, застрявшие после падения процесса или потери задачи
"""

from __future__ import annotations

import time

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger, setup_logging
from meeting_followup_agent.common.metrics import track_stage_latency
from meeting_followup_agent.jobs.stuck_events_job import run as run_stuck_events

log = get_project_logger()


def main() -> None:
    setup_logging()
    settings = get_settings()
    interval_sec = max(5, int(settings.stuck_events_interval_sec))

    log.info(
        "worker_stuck_events_started",
        extra={
            "payload": {
                "enabled": bool(settings.stuck_events_enabled),
                "interval_sec": interval_sec,
                "limit": int(settings.stuck_event_batch_limit),
            }
        },
    )

    while True:
        try:
            with track_stage_latency("worker-stuck-events", "stuck_events_scan"):
                run_stuck_events(limit=int(settings.stuck_event_batch_limit))
        except Exception as e:
            log.error(
                "worker_stuck_events_error",
                extra={"payload": {"err": str(e)[:300]}},
            )
        time.sleep(interval_sec)


if __name__ == "__main__":
    main()
