"""
Приём вебхуков платформы встреч.

Назначение:
- проверка подписи (401 при несовпадении)
- ответ на endpoint.url_validation без сохранения
- сохранение RawEvent, идемпотентно по external_event_id
  (Redis SET NX как быстрый путь, уникальный ключ в БД как источник истины)
- повторная доставка:
    processed                      -> duplicate
    received/processing и свежее   -> duplicate + processing
    failed или зависшее            -> повторная обработка того же RawEvent
- передача в очередь событий (inline или Redis)

После сохранения события ответ всегда 200: платформа не должна ретраить то,
что уже лежит в БД и будет дообработано.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.metrics import WEBHOOK_EVENTS_TOTAL
from meeting_followup_agent.common.run_context import PipelineRun, Stage
from meeting_followup_agent.common.time import utc_now
from meeting_followup_agent.connectors.zoom.payloads import (
    external_event_id,
    payload_object,
    plain_token,
)
from meeting_followup_agent.connectors.zoom.signature import (
    challenge_response,
    normalize_uuid,
    verify_signature,
)
from meeting_followup_agent.contracts.http_api import UrlValidationResponse, WebhookAck
from meeting_followup_agent.contracts.webhook_events import WebhookEnvelope
from meeting_followup_agent.domain.enums import EventKind, RawEventStatus
from meeting_followup_agent.queue.dispatcher import enqueue_raw_event
from meeting_followup_agent.queue.idempotency import check_and_set
from meeting_followup_agent.storage.db import db_session
from meeting_followup_agent.storage.models import RawEvent
from meeting_followup_agent.storage.repositories import RawEventRepository

log = get_project_logger()

SIGNATURE_HEADER = "x-zm-signature"
TIMESTAMP_HEADER = "x-zm-request-timestamp"
IDEMPOTENCY_SCOPE = "zoom_webhook"

# запас сверх бюджета прогона на запись результатов в БД
IN_FLIGHT_MARGIN_SEC = 30


def in_flight_window_sec() -> float:
    """Моложе этого возраста незавершённое событие считаем "ещё обрабатывается"."""
    return float(get_settings().pipeline_budget_sec) + IN_FLIGHT_MARGIN_SEC


@dataclass
class WebhookOutcome:
    status_code: int
    body: dict[str, Any]


def _header(headers: Mapping[str, str], name: str) -> str:
    return headers.get(name) or headers.get(name.title()) or ""


def _reject(status_code: int, error: str, *, event_type: str, result: str) -> WebhookOutcome:
    WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, result=result).inc()
    return WebhookOutcome(status_code, {"error": error})


# =============================================================================
# СОХРАНЕНИЕ / ПОВТОРЫ
# =============================================================================
@dataclass
class _Stored:
    raw_event_id: str
    created: bool
    status: RawEventStatus
    age_sec: float


def _store(envelope: dict[str, Any], event_type: str, ext_id: str) -> _Stored:
    ext_meeting_id = normalize_uuid(payload_object(envelope).get("uuid"))
    now = utc_now()
    with db_session() as session:
        repo = RawEventRepository(session)
        ev, created = repo.add_if_absent(
            RawEvent(
                external_event_id=ext_id,
                event_type=event_type,
                payload=envelope,
                external_meeting_id=ext_meeting_id,
                status=RawEventStatus.received,
                received_at=now,
                updated_at=now,
            )
        )
        session.flush()
        age = (now - ev.updated_at).total_seconds() if ev.updated_at else 0.0
        return _Stored(
            raw_event_id=ev.id, created=created, status=RawEventStatus(ev.status), age_sec=age
        )


def _lookup(ext_id: str) -> _Stored | None:
    with db_session() as session:
        ev = RawEventRepository(session).get_by_external_id(ext_id)
        if ev is None:
            return None
        return _Stored(
            raw_event_id=ev.id,
            created=False,
            status=RawEventStatus(ev.status),
            age_sec=(utc_now() - ev.updated_at).total_seconds(),
        )


def _duplicate_ack(stored: _Stored) -> WebhookAck | None:
    """
    None — событие нужно (пере)обработать.
    """
    if stored.status == RawEventStatus.processed:
        return WebhookAck(duplicate=True, event_id=stored.raw_event_id)
    in_flight = stored.status in {RawEventStatus.received, RawEventStatus.processing}
    if in_flight and stored.age_sec < in_flight_window_sec():
        return WebhookAck(duplicate=True, processing=True, event_id=stored.raw_event_id)
    return None


# =============================================================================
# PUBLIC API
# =============================================================================
def ingest_webhook(body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
    s = get_settings()
    raw = body.decode("utf-8", errors="replace")

    # 1) подпись по сырому телу
    if s.zoom_verify_signature and not verify_signature(
        raw,
        _header(headers, SIGNATURE_HEADER),
        _header(headers, TIMESTAMP_HEADER),
        s.zoom_webhook_secret_token,
    ):
        log.warning(
            "zoom_webhook_bad_signature",
            extra={"payload": {"timestamp": _header(headers, TIMESTAMP_HEADER)}},
        )
        return _reject(401, "Invalid signature", event_type="unknown", result="bad_signature")

    # 2) разбор конверта
    try:
        envelope = WebhookEnvelope.model_validate(json.loads(raw)).model_dump()
    except (ValueError, PydanticValidationError) as e:
        log.warning("zoom_webhook_invalid_json", extra={"payload": {"err": str(e)[:200]}})
        return _reject(400, "Invalid JSON", event_type="unknown", result="invalid_json")

    event_type = envelope["event"]
    log.info(
        "zoom_webhook_received",
        extra={"payload": {"event": event_type, "event_ts": envelope.get("event_ts")}},
    )

    # 3) URL validation: без сохранения
    if EventKind.parse(event_type) == EventKind.url_validation:
        token = plain_token(envelope)
        if not token or not s.zoom_webhook_secret_token:
            return _reject(
                400, "Missing plainToken", event_type=event_type, result="invalid_json"
            )
        WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, result="url_validation").inc()
        log.info("zoom_url_validation_responded")
        answer = UrlValidationResponse(**challenge_response(token, s.zoom_webhook_secret_token))
        return WebhookOutcome(200, answer.model_dump())

    # 4) сохранение
    run = PipelineRun(service="webhook")
    ext_id = external_event_id(envelope)
    with run.stage(Stage.WEBHOOK_RECEIVED, event_type=event_type) as info:
        stored = None
        if not check_and_set(IDEMPOTENCY_SCOPE, ext_id):
            # ключ уже видели: без попытки вставки
            stored = _lookup(ext_id)
        if stored is None:
            stored = _store(envelope, event_type, ext_id)
        info["created"] = stored.created

    if not stored.created:
        ack = _duplicate_ack(stored)
        if ack is not None:
            WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, result="duplicate").inc()
            log.info(
                "zoom_webhook_duplicate",
                extra={
                    "payload": {
                        "external_event_id": ext_id,
                        "raw_event_id": stored.raw_event_id,
                        "status": stored.status.value,
                        "processing": ack.processing,
                    }
                },
            )
            run.finish(status="duplicate", raw_event_id=stored.raw_event_id)
            return WebhookOutcome(200, ack.model_dump())

        log.info(
            "zoom_webhook_retry_existing",
            extra={
                "payload": {
                    "raw_event_id": stored.raw_event_id,
                    "status": stored.status.value,
                    "age_sec": round(stored.age_sec, 1),
                }
            },
        )

    WEBHOOK_EVENTS_TOTAL.labels(event_type=event_type, result="stored").inc()

    # 5) обработка / очередь
    try:
        result = enqueue_raw_event(stored.raw_event_id, run=run)
    except Exception as e:
        # событие сохранено: его подберёт джоба зависших событий
        log.error(
            "zoom_webhook_dispatch_failed",
            extra={"payload": {"raw_event_id": stored.raw_event_id, "err": str(e)[:200]}},
        )
        run.finish(status="dispatch_failed", raw_event_id=stored.raw_event_id)
        body_out = WebhookAck(event_id=stored.raw_event_id).model_dump()
        body_out["error"] = "Internal processing error"
        return WebhookOutcome(200, body_out)

    ack = WebhookAck(
        event_id=stored.raw_event_id,
        external_meeting_id=normalize_uuid(payload_object(envelope).get("uuid")),
    )
    if result is not None:
        ack.action = result.action.value
        if result.error:
            log.warning(
                "zoom_webhook_processing_failed",
                extra={"payload": {"raw_event_id": stored.raw_event_id, "err": result.error[:200]}},
            )
    run.finish(status=ack.action or "queued", raw_event_id=stored.raw_event_id)
    return WebhookOutcome(200, ack.model_dump())


