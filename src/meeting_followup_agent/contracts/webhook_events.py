"""
Контракты входящих вебхуков и задач очереди событий.

Важно:
- конверт вебхука валидируем мягко (extra разрешены, платформа добавляет поля)
- в очередь кладём только id RawEvent, сам payload живёт в БД
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .versions import QUEUE_SCHEMA_VERSION


class WebhookEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(min_length=1)
    event_ts: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    download_token: str | None = None


@dataclass
class RawEventTask:
    schema_version: Literal["v1"]
    raw_event_id: str
    attempts: int = 0

    @classmethod
    def new(cls, raw_event_id: str) -> RawEventTask:
        return cls(schema_version=QUEUE_SCHEMA_VERSION, raw_event_id=raw_event_id)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> RawEventTask:
        data = json.loads(raw)
        return cls(
            schema_version=data.get("schema_version", QUEUE_SCHEMA_VERSION),
            raw_event_id=str(data["raw_event_id"]),
            attempts=int(data.get("attempts") or 0),
        )
