from __future__ import annotations

import json

import pytest
import requests
from fastapi.testclient import TestClient

from apps.api_gateway.main import app
from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.connectors.zoom.signature import expected_signature

AUTH = {"X-API-Key": "test-api-key"}


class _Resp:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text


def _signed_post(client: TestClient, envelope: dict):
    raw = json.dumps(envelope)
    ts = "1700000000"
    headers = {
        "x-zm-signature": expected_signature(raw, ts, get_settings().zoom_webhook_secret_token),
        "x-zm-request-timestamp": ts,
        "content-type": "application/json",
    }
    return client.post("/v1/webhooks/zoom", content=raw.encode("utf-8"), headers=headers)


def test_meeting_lifecycle_from_webhooks_to_draft(
    make_envelope, make_downloader, monkeypatch: pytest.MonkeyPatch
) -> None:
    vtt = make_downloader().content
    downloads: list[dict] = []

    def fake_get(url: str, *, headers: dict, timeout: float) -> _Resp:
        downloads.append({"url": url, "headers": headers, "timeout": timeout})
        return _Resp(200, vtt)

    monkeypatch.setattr(requests, "get", fake_get)
    client = TestClient(app)

    ended = _signed_post(client, make_envelope("meeting.ended", event_ts=1)).json()
    assert ended["action"] == "created"

    recording = make_envelope("recording.completed", event_ts=2)
    done = _signed_post(client, recording).json()
    assert done["action"] == "updated"
    assert len(downloads) == 1
    assert downloads[0]["url"] == "https://zoom.test/rec/transcript.vtt"
    assert downloads[0]["headers"] == {"Authorization": "Bearer dl-token"}

    meeting = client.get("/v1/meetings/meeting-uuid-1", headers=AUTH).json()
    assert meeting["status"] == "completed"
    assert meeting["transcript"]["word_count"] > 0
    draft = meeting["draft"]
    assert draft["status"] == "generated"
    assert draft["subject"]
    assert "Action Items:" in draft["body"]
    assert 0 <= draft["quality_score"] <= 100
    assert draft["retry_count"] == 1

    # повторная доставка того же вебхука
    again = _signed_post(client, recording).json()
    assert again["duplicate"] is True
    assert again["event_id"] == done["event_id"]

    # поздний transcript_completed: транскрипт и черновик переиспользуются
    late = _signed_post(client, make_envelope("recording.transcript_completed", event_ts=3))
    assert late.json()["action"] == "updated"
    assert len(downloads) == 1

    meeting = client.get("/v1/meetings/meeting-uuid-1", headers=AUTH).json()
    assert [d["id"] for d in meeting["draft_history"]] == [draft["id"]]
    assert meeting["status"] == "completed"


def test_transcript_download_error_marks_meeting_failed(
    make_envelope, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(requests, "get", lambda url, **kw: _Resp(403, "forbidden"))
    client = TestClient(app)

    ack = _signed_post(client, make_envelope("recording.transcript_completed")).json()

    assert ack["action"] == "failed"
    meeting = client.get("/v1/meetings/meeting-uuid-1", headers=AUTH).json()
    assert meeting["status"] == "failed"
    assert meeting["transcript"]["status"] == "failed"
    assert "403" in meeting["transcript"]["last_fetch_error"]
    assert meeting["draft"] is None
