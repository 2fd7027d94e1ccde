"""
Генерация идентификаторов.

Назначение:
- первичные ключи сущностей
- run_id для трассировки одного прогона пайплайна
- токены аренды (lease) на встречу
"""

from __future__ import annotations

import secrets
import uuid
from datetime import UTC, datetime


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_run_id(prefix: str = "run") -> str:
    """
    Идентификатор прогона пайплайна.
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    rnd = secrets.token_hex(6)
    return f"{prefix}_{ts}_{rnd}"


def new_lease_token() -> str:
    return uuid.uuid4().hex
