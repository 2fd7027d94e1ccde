from __future__ import annotations

import pytest

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.errors import UnauthorizedError
from meeting_followup_agent.common.security import require_auth


@pytest.fixture()
def auth_settings():
    s = get_settings()
    keys = ["app_env", "auth_mode", "api_keys"]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


def test_auth_none_mode_allows_request(auth_settings) -> None:
    auth_settings.app_env = "dev"
    auth_settings.auth_mode = "none"
    ctx = require_auth(authorization=None, x_api_key=None)
    assert ctx.auth_type == "none"


def test_auth_none_mode_rejected_in_prod(auth_settings) -> None:
    auth_settings.app_env = "prod"
    auth_settings.auth_mode = "none"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key=None)


def test_auth_api_key_mode_rejects_invalid_key(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1,k2"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization=None, x_api_key="bad")


def test_auth_api_key_mode_requires_key(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization="Basic abc", x_api_key=None)


def test_auth_api_key_mode_accepts_header_and_bearer(auth_settings) -> None:
    auth_settings.auth_mode = "api_key"
    auth_settings.api_keys = "k1-secret, k2-secret"

    ctx = require_auth(authorization=None, x_api_key="k2-secret")
    assert ctx.auth_type == "api_key"
    assert ctx.subject == "api_key:k2-s"

    ctx = require_auth(authorization="Bearer k1-secret", x_api_key=None)
    assert ctx.subject == "api_key:k1-s"


def test_auth_unknown_mode_rejected(auth_settings) -> None:
    auth_settings.auth_mode = "jwt"
    with pytest.raises(UnauthorizedError):
        require_auth(authorization="Bearer x", x_api_key=None)
