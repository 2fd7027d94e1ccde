"""
Повторная постановка задач очереди событий и DLQ.

Назначение:
- воркер не смог даже начать обработку (БД/Redis недоступны) -> вернуть задачу
- ограниченное число попыток, дальше <queue>:dlq

Бизнес-ошибки сюда не попадают: они фиксируются в статусе RawEvent.
"""

from __future__ import annotations

import time

from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.contracts.webhook_events import RawEventTask

from .redis import redis_client

log = get_project_logger()


def dlq_name(queue_name: str) -> str:
    return f"{queue_name}:dlq"


def requeue_with_backoff(
    *,
    queue_name: str,
    task: RawEventTask,
    max_attempts: int = 3,
    backoff_sec: float = 1.0,
) -> bool:
    """
    Возвращает:
    - True: задача поставлена обратно в очередь
    - False: задача отправлена в DLQ
    """
    r = redis_client()
    task.attempts += 1

    if task.attempts > max_attempts:
        dlq = dlq_name(queue_name)
        r.lpush(dlq, task.to_json())
        log.warning(
            "task_moved_to_dlq",
            extra={
                "payload": {
                    "queue": queue_name,
                    "dlq": dlq,
                    "raw_event_id": task.raw_event_id,
                    "attempts": task.attempts,
                }
            },
        )
        return False

    if backoff_sec > 0:
        time.sleep(backoff_sec)

    r.lpush(queue_name, task.to_json())
    log.warning(
        "task_requeued",
        extra={
            "payload": {
                "queue": queue_name,
                "raw_event_id": task.raw_event_id,
                "attempts": task.attempts,
                "backoff_sec": backoff_sec,
            }
        },
    )
    return True
