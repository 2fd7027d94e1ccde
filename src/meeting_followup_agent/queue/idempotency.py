"""
Быстрая дедупликация вебхуков (Redis SET NX EX).

Зачем нужно:
- платформа доставляет вебхуки at-least-once и ретраит их
- дешёвый отсев повторов до похода в БД

Источник истины — уникальный external_event_id в raw_events.
Redis здесь только ускоритель: при его недоступности пропускаем дальше (fail-open).
"""

from __future__ import annotations

import redis

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger

from .redis import redis_client

log = get_project_logger()

DEFAULT_TTL_SEC = 60 * 60 * 24  # 24 часа


def _key(scope: str, idem_key: str) -> str:
    return f"idem:{scope}:{idem_key}"


def check_and_set(scope: str, idem_key: str, ttl_sec: int | None = None) -> bool:
    """
    Возвращает True, если ключ НОВЫЙ (можно обрабатывать),
    и False, если ключ уже был (дедуп).

    В inline-режиме Redis не используется: всегда True, дедуп делает БД.
    """
    s = get_settings()
    if (s.queue_mode or "").strip().lower() == "inline":
        return True

    ttl = int(ttl_sec or s.webhook_dedup_ttl_sec or DEFAULT_TTL_SEC)
    try:
        ok = redis_client().set(name=_key(scope, idem_key), value="1", nx=True, ex=ttl)
    except redis.RedisError as e:
        log.warning(
            "idempotency_redis_unavailable",
            extra={"payload": {"scope": scope, "err": str(e)[:200]}},
        )
        return True
    return bool(ok)
