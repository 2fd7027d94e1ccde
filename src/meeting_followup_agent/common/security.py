"""
Авторизация операторских эндпоинтов.

Поддерживаемые режимы (AUTH_MODE):
- api_key — проверка X-API-Key или Bearer <key>
- none    — без авторизации (ТОЛЬКО dev)

Вебхук платформы сюда не ходит: он защищён подписью.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import get_settings
from .errors import UnauthorizedError
from .utils import constant_time_equals


def _parse_api_keys(raw: str) -> set[str]:
    """
    Разбор строки API_KEYS из ENV в множество.
    """
    return {k.strip() for k in (raw or "").split(",") if k.strip()}


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip()
    return None


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str


def require_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    s = get_settings()
    mode = (s.auth_mode or "api_key").strip().lower()

    if mode == "none":
        if _is_prod_env(s.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none")

    if mode != "api_key":
        raise UnauthorizedError(f"Неизвестный AUTH_MODE: {mode}")

    provided = x_api_key or _extract_bearer(authorization)
    if not provided:
        raise UnauthorizedError("Требуется API ключ")

    for key in _parse_api_keys(s.api_keys):
        if constant_time_equals(provided, key):
            return AuthContext(subject=f"api_key:{key[:4]}", auth_type="api_key")
    raise UnauthorizedError("Неверный API ключ")
