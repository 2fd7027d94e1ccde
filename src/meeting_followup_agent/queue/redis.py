"""
Redis-клиент для очереди событий и быстрой дедупликации вебхуков.

Назначение:
- единая точка подключения к Redis
- явные socket-таймауты (никакой операции без верхней границы)
"""

from __future__ import annotations

import redis

from meeting_followup_agent.common.config import get_settings

_client: redis.Redis | None = None


def redis_client() -> redis.Redis:
    """
    Singleton Redis client.
    """
    global _client
    if _client is None:
        s = get_settings()
        _client = redis.Redis.from_url(
            s.redis_url,
            decode_responses=True,
            socket_timeout=s.redis_timeout_sec,
            socket_connect_timeout=s.redis_timeout_sec,
        )
    return _client
