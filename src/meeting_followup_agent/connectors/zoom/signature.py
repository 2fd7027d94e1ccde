"""
Проверка подписи вебхуков Zoom и ответ на URL validation.

x-zm-signature = "v0=" + hex(HMAC_SHA256(secret, "v0:{timestamp}:{body}"))
URL validation: {"plainToken": t, "encryptedToken": hex(HMAC_SHA256(secret, t))}
"""

from __future__ import annotations

from urllib.parse import unquote

from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.utils import constant_time_equals, hmac_sha256_hex

log = get_project_logger()

SIGNATURE_VERSION = "v0"


def expected_signature(body: str, timestamp: str, secret: str) -> str:
    message = f"{SIGNATURE_VERSION}:{timestamp}:{body}"
    return f"{SIGNATURE_VERSION}=" + hmac_sha256_hex(secret, message)


def verify_signature(
    body: str, signature: str | None, timestamp: str | None, secret: str | None
) -> bool:
    """
    Без секрета подпись всегда невалидна (не принимаем неподписанные вебхуки).
    """
    if not secret:
        log.error("zoom_webhook_secret_missing")
        return False
    if not signature or not timestamp:
        return False
    return constant_time_equals(signature, expected_signature(body, timestamp, secret))


def challenge_response(plain_token: str, secret: str) -> dict[str, str]:
    return {
        "plainToken": plain_token,
        "encryptedToken": hmac_sha256_hex(secret, plain_token),
    }


def normalize_uuid(uuid: str | None) -> str | None:
    """
    UUID встречи Zoom может приходить URL-кодированным (%2F вместо /).
    Храним декодированную и обрезанную форму.
    """
    if not uuid:
        return uuid
    normalized = unquote(uuid) if "%" in uuid else uuid
    normalized = normalized.strip()
    if normalized != uuid:
        log.info(
            "zoom_uuid_normalized",
            extra={"payload": {"original": uuid, "normalized": normalized}},
        )
    return normalized
