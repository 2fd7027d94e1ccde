"""
Диспетчер очереди событий.

Назначение:
- единое имя очереди
- QUEUE_MODE=inline: обработка сразу в процессе вебхука
- QUEUE_MODE=redis: LPUSH id RawEvent в q:events, воркер делает BRPOP
"""

from __future__ import annotations

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.run_context import PipelineRun
from meeting_followup_agent.contracts.webhook_events import RawEventTask
from meeting_followup_agent.services.event_service import HandleResult, handle_raw_event

from .redis import redis_client

log = get_project_logger()

# =============================================================================
# ИМЕНА ОЧЕРЕДЕЙ (Redis lists)
# =============================================================================
Q_EVENTS = "q:events"


def is_inline_mode() -> bool:
    return (get_settings().queue_mode or "").strip().lower() == "inline"


def enqueue_raw_event(raw_event_id: str, *, run: PipelineRun | None = None) -> HandleResult | None:
    """
    inline -> результат обработки; redis -> None (обработает воркер).
    """
    if is_inline_mode():
        result = handle_raw_event(raw_event_id, run=run)
        log.info(
            "enqueue_raw_event_inline",
            extra={"payload": {"raw_event_id": raw_event_id, "action": result.action.value}},
        )
        return result

    redis_client().lpush(Q_EVENTS, RawEventTask.new(raw_event_id).to_json())
    log.info(
        "enqueue_raw_event",
        extra={"payload": {"raw_event_id": raw_event_id, "queue": Q_EVENTS}},
    )
    return None
