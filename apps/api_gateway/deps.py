"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации операторских эндпоинтов (X-API-Key / Bearer <key>)
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from meeting_followup_agent.common.errors import UnauthorizedError
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.security import AuthContext, require_auth

log = get_project_logger()


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP.
    """
    try:
        ctx = require_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        endpoint, method, client_ip = _request_meta(request)
        log.warning(
            "security_audit_deny",
            extra={
                "payload": {
                    "endpoint": endpoint,
                    "method": method,
                    "reason": e.message,
                    "error_code": e.code,
                    "client_ip": client_ip,
                }
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    endpoint, method, client_ip = _request_meta(request)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "reason": "auth_ok",
                "auth_type": ctx.auth_type,
                "subject": ctx.subject,
                "client_ip": client_ip,
            }
        },
    )
    return ctx
