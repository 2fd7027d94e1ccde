from __future__ import annotations

import hashlib
import hmac
from datetime import datetime

from meeting_followup_agent.connectors.zoom.payloads import (
    DEFAULT_HOST_EMAIL,
    DEFAULT_TOPIC,
    download_token,
    external_event_id,
    meeting_fields,
    plain_token,
    transcript_file,
    video_file,
)
from meeting_followup_agent.connectors.zoom.signature import (
    challenge_response,
    expected_signature,
    normalize_uuid,
    verify_signature,
)

SECRET = "s3cret"


def _hmac(message: str) -> str:
    return hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()


def test_expected_signature_format() -> None:
    body = '{"event":"meeting.ended"}'
    sig = expected_signature(body, "1700000000", SECRET)
    assert sig == "v0=" + _hmac(f"v0:1700000000:{body}")


def test_verify_signature() -> None:
    body = '{"a":1}'
    good = expected_signature(body, "42", SECRET)

    assert verify_signature(body, good, "42", SECRET) is True
    assert verify_signature(body, good, "43", SECRET) is False
    assert verify_signature(body + " ", good, "42", SECRET) is False
    assert verify_signature(body, None, "42", SECRET) is False
    assert verify_signature(body, good, None, SECRET) is False
    # без секрета не принимаем ничего
    assert verify_signature(body, good, "42", None) is False


def test_challenge_response() -> None:
    out = challenge_response("plain-123", SECRET)
    assert out == {"plainToken": "plain-123", "encryptedToken": _hmac("plain-123")}


def test_normalize_uuid() -> None:
    assert normalize_uuid("abc%2Fdef%3D%3D") == "abc/def=="
    assert normalize_uuid("  plain  ") == "plain"
    assert normalize_uuid(None) is None


def test_external_event_id() -> None:
    env = {"event": "meeting.ended", "event_ts": 1700, "payload": {"object": {"uuid": "u1"}}}
    assert external_event_id(env) == "meeting.ended-u1-1700"
    assert external_event_id({"event": "app.deauthorized", "event_ts": 5}) == "app.deauthorized-5"


def test_meeting_fields_defaults_and_parsing() -> None:
    env = {
        "event": "meeting.ended",
        "payload": {
            "object": {
                "uuid": "abc%2F1",
                "start_time": "2024-01-15T10:00:00Z",
                "duration": "45",
                "participants": ["Jane", {"user_name": "Bob", "user_email": "bob@x.io"}, {}, 7],
            }
        },
    }
    f = meeting_fields(env)

    assert f.external_meeting_id == "abc/1"
    assert f.host_email == DEFAULT_HOST_EMAIL
    assert f.topic == DEFAULT_TOPIC
    assert f.start_time == datetime(2024, 1, 15, 10, 0, 0)
    assert f.end_time is None
    assert f.duration == 45
    assert f.participants == [{"name": "Jane"}, {"name": "Bob", "email": "bob@x.io"}]


def test_recording_files_and_tokens() -> None:
    env = {
        "event": "recording.completed",
        "download_token": "root-token",
        "payload": {
            "plainToken": "pt",
            "object": {
                "uuid": "u1",
                "download_token": "object-token",
                "recording_files": [
                    {"file_type": "TRANSCRIPT", "status": "processing", "download_url": "a"},
                    {"file_type": "TRANSCRIPT", "status": "completed", "download_url": "b"},
                    {"file_type": "MP4", "status": "completed", "download_url": "c"},
                    "junk",
                ],
            },
        },
    }

    assert transcript_file(env)["download_url"] == "b"
    assert video_file(env)["download_url"] == "c"
    assert download_token(env) == "root-token"
    assert plain_token(env) == "pt"

    del env["download_token"]
    assert download_token(env) == "object-token"
    assert transcript_file({"event": "x"}) is None
