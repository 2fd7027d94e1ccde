"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики вебхуков, обработки событий, LLM-вызовов и черновиков
- Гистограммы задержек стадий пайплайна и качества черновиков
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "followup_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "followup_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

WEBHOOK_EVENTS_TOTAL = Counter(
    "followup_webhook_events_total",
    "Входящие вебхуки платформы",
    ["event_type", "result"],  # result=stored|duplicate|bad_signature|url_validation
)

RAW_EVENTS_HANDLED_TOTAL = Counter(
    "followup_raw_events_handled_total",
    "Обработка RawEvent машиной состояний",
    ["event_type", "action"],  # action=created|updated|skipped|failed
)

PIPELINE_STAGE_LATENCY_MS = Histogram(
    "followup_pipeline_stage_latency_ms",
    "Задержка выполнения стадий пайплайна (мс)",
    ["service", "stage"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000),
)

LLM_CALLS_TOTAL = Counter(
    "followup_llm_calls_total",
    "Вызовы LLM по исходу",
    ["provider", "outcome"],  # outcome=ok|timeout|retryable_error|fatal_error
)

DRAFTS_TOTAL = Counter(
    "followup_drafts_total",
    "Черновики по финальному статусу",
    ["status", "meeting_type"],
)

DRAFT_QUALITY_SCORE = Histogram(
    "followup_draft_quality_score",
    "Оценка качества сгенерированных черновиков (0-100)",
    buckets=(10, 20, 30, 40, 50, 55, 60, 70, 85, 100),
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        PIPELINE_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def record_draft_result(*, status: str, meeting_type: str | None, quality: int | None) -> None:
    DRAFTS_TOTAL.labels(status=status, meeting_type=meeting_type or "unknown").inc()
    if quality is not None:
        DRAFT_QUALITY_SCORE.observe(quality)


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI, *, service: str = "api-gateway") -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service=service,
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service=service,
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
