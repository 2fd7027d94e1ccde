"""
Разбор конверта вебхука Zoom.

Назначение:
- внешний id события (ключ идемпотентности)
- поля встречи для upsert (с дефолтами платформы)
- файлы записи (TRANSCRIPT / MP4) и download_token
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from meeting_followup_agent.common.time import parse_iso_datetime

from .signature import normalize_uuid

DEFAULT_HOST_EMAIL = "unknown@unknown.com"
DEFAULT_TOPIC = "Untitled Meeting"

FILE_TYPE_TRANSCRIPT = "TRANSCRIPT"
FILE_TYPE_VIDEO = "MP4"
FILE_STATUS_COMPLETED = "completed"


@dataclass
class MeetingFields:
    external_meeting_id: str | None
    host_email: str = DEFAULT_HOST_EMAIL
    topic: str = DEFAULT_TOPIC
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: int | None = None
    participants: list[dict[str, Any]] = field(default_factory=list)


def _payload(envelope: dict[str, Any]) -> dict[str, Any]:
    p = envelope.get("payload")
    return p if isinstance(p, dict) else {}


def payload_object(envelope: dict[str, Any]) -> dict[str, Any]:
    obj = _payload(envelope).get("object")
    return obj if isinstance(obj, dict) else {}


def external_event_id(envelope: dict[str, Any]) -> str:
    """
    "{event}-{uuid}-{event_ts}"; без uuid (неизвестные события) — "{event}-{event_ts}".
    """
    event = envelope.get("event") or "unknown"
    event_ts = envelope.get("event_ts")
    uuid = payload_object(envelope).get("uuid")
    if uuid:
        return f"{event}-{uuid}-{event_ts}"
    return f"{event}-{event_ts}"


def _participants(raw: Any) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    if not isinstance(raw, list):
        return out
    for p in raw:
        if isinstance(p, str) and p.strip():
            out.append({"name": p.strip()})
            continue
        if not isinstance(p, dict):
            continue
        name = p.get("name") or p.get("user_name")
        if not name:
            continue
        item: dict[str, Any] = {"name": str(name)}
        email = p.get("email") or p.get("user_email")
        if email:
            item["email"] = str(email)
        out.append(item)
    return out


def _duration(raw: Any) -> int | None:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value or None


def meeting_fields(envelope: dict[str, Any]) -> MeetingFields:
    obj = payload_object(envelope)
    return MeetingFields(
        external_meeting_id=normalize_uuid(obj.get("uuid")) or None,
        host_email=obj.get("host_email") or DEFAULT_HOST_EMAIL,
        topic=obj.get("topic") or DEFAULT_TOPIC,
        start_time=parse_iso_datetime(obj.get("start_time")),
        end_time=parse_iso_datetime(obj.get("end_time")),
        duration=_duration(obj.get("duration")),
        participants=_participants(obj.get("participants")),
    )


def completed_file(envelope: dict[str, Any], file_type: str) -> dict[str, Any] | None:
    for f in payload_object(envelope).get("recording_files") or []:
        if not isinstance(f, dict):
            continue
        if f.get("file_type") == file_type and f.get("status") == FILE_STATUS_COMPLETED:
            return f
    return None


def transcript_file(envelope: dict[str, Any]) -> dict[str, Any] | None:
    return completed_file(envelope, FILE_TYPE_TRANSCRIPT)


def video_file(envelope: dict[str, Any]) -> dict[str, Any] | None:
    return completed_file(envelope, FILE_TYPE_VIDEO)


def download_token(envelope: dict[str, Any]) -> str | None:
    """Корень конверта или payload.object.download_token."""
    token = envelope.get("download_token") or payload_object(envelope).get("download_token")
    return str(token) if token else None


def plain_token(envelope: dict[str, Any]) -> str | None:
    token = _payload(envelope).get("plainToken")
    return str(token) if token else None
