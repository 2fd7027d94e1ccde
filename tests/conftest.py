"""
Общая настройка тестов.

ENV выставляется ДО импорта проекта: engine БД и настройки создаются при импорте.
- SQLite во временной директории вместо Postgres
- QUEUE_MODE=inline: Redis не нужен
- LLM_PROVIDER=mock
"""

from __future__ import annotations

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="followup-tests-")

os.environ.setdefault("POSTGRES_DSN", f"sqlite:///{_TMP_DIR}/test.db")
os.environ.setdefault("QUEUE_MODE", "inline")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("ZOOM_WEBHOOK_SECRET_TOKEN", "test-webhook-secret")
os.environ.setdefault("AUTH_MODE", "api_key")
os.environ.setdefault("API_KEYS", "test-api-key")
os.environ.setdefault("LLM_RETRY_BACKOFF_MS", "1")
os.environ.setdefault("TRANSCRIPT_DOWNLOAD_BACKOFF_MS", "1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from meeting_followup_agent.storage.db import engine  # noqa: E402
from meeting_followup_agent.storage.models import Base  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_db():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield


SAMPLE_VTT = (
    "WEBVTT\n\n"
    "1\n00:00:01.000 --> 00:00:05.000\n"
    "Jane Smith: Thanks for joining. Let's review the pricing proposal and the budget.\n\n"
    "2\n00:00:06.000 --> 00:00:12.000\n"
    "Bob Lee: Our main concern is the integration timeline and the deployment window.\n\n"
    "3\n00:00:13.000 --> 00:00:20.000\n"
    "Jane Smith: I will send the proposal with pricing tiers by Friday. "
    "Can we schedule a demo next week?\n"
)


class FakeDownloader:
    """
    Загрузчик транскрипта без сети: отдаёт заданный VTT или бросает ошибку.
    failures=N: ошибка только на первых N вызовах (None — на всех).
    """

    def __init__(
        self,
        content: str = SAMPLE_VTT,
        error: Exception | None = None,
        failures: int | None = None,
    ) -> None:
        self.timeout_s = 1.0
        self.content = content
        self.error = error
        self.failures = failures
        self.calls: list[tuple[str, str]] = []

    def download(self, url: str, token: str) -> str:
        self.calls.append((url, token))
        failing = self.failures is None or len(self.calls) <= self.failures
        if self.error is not None and failing:
            raise self.error
        return self.content


def zoom_envelope(
    event: str,
    *,
    uuid: str | None = "meeting-uuid-1",
    event_ts: int = 1_700_000_000_000,
    token: str | None = "dl-token",
    transcript_url: str | None = "https://zoom.test/rec/transcript.vtt",
    topic: str = "Q1 pricing review",
    host_email: str = "jane@acme.io",
) -> dict:
    obj: dict = {"topic": topic, "host_email": host_email, "start_time": "2024-01-15T10:00:00Z"}
    if uuid is not None:
        obj["uuid"] = uuid
    if transcript_url is not None:
        obj["recording_files"] = [
            {"file_type": "TRANSCRIPT", "status": "completed", "download_url": transcript_url}
        ]
    env: dict = {"event": event, "event_ts": event_ts, "payload": {"object": obj}}
    if token is not None:
        env["download_token"] = token
    return env


@pytest.fixture()
def store_raw_event():
    """Сохраняет конверт как RawEvent(received) и возвращает его id."""
    from meeting_followup_agent.connectors.zoom.payloads import external_event_id
    from meeting_followup_agent.storage.db import db_session
    from meeting_followup_agent.storage.models import RawEvent

    def _store(envelope: dict) -> str:
        with db_session() as s:
            ev = RawEvent(
                external_event_id=external_event_id(envelope),
                event_type=envelope["event"],
                payload=envelope,
            )
            s.add(ev)
            s.flush()
            return ev.id

    return _store


@pytest.fixture()
def make_envelope():
    return zoom_envelope


@pytest.fixture()
def make_downloader():
    return FakeDownloader
