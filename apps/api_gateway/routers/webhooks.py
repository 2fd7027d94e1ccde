"""
Вебхук платформы встреч.

POST /v1/webhooks/zoom

Тело читается сырым: подпись считается по байтам запроса.
Авторизация: подпись x-zm-signature (не API ключ).
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from meeting_followup_agent.services.webhook_service import ingest_webhook

router = APIRouter()


@router.post("/webhooks/zoom")
async def zoom_webhook(request: Request) -> JSONResponse:
    body = await request.body()
    # inline-режим гоняет весь пайплайн: не держим event loop
    outcome = await run_in_threadpool(ingest_webhook, body, request.headers)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
