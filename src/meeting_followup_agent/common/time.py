"""
Утилиты времени.

Назначение:
- единый формат времени (UTC)
- разбор ISO-строк из вебхуков платформы
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (naive, как хранится в БД).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    "2024-01-15T10:00:00Z" -> naive UTC datetime.
    Некорректная строка -> None.
    """
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def format_meeting_date(value: datetime | None) -> str:
    """Дата встречи для промпта: "January 15, 2024"."""
    if value is None:
        return "Unknown date"
    return value.strftime("%B %d, %Y")
