"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- вебхук платформы встреч (POST /v1/webhooks/zoom)
- операторский HTTP API: встреча + транскрипт + черновик, reprocess события

Архитектурно:
- вебхук сохраняет RawEvent и либо обрабатывает его сразу (QUEUE_MODE=inline),
  либо кладёт id в Redis список q:events
- worker_events забирает задачи из q:events
- worker_stuck_events перезапускает зависшие события
"""

from __future__ import annotations

from typing import Any

import uvicorn
from fastapi import FastAPI

from apps.api_gateway.routers.meetings import router as meetings_router
from apps.api_gateway.routers.webhooks import router as webhooks_router
from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.logging import get_project_logger, setup_logging
from meeting_followup_agent.common.metrics import setup_metrics_endpoint

log = get_project_logger()


def _create_app() -> FastAPI:
    app = FastAPI(title="Meeting Follow-up Agent", version="0.1.0")
    setup_metrics_endpoint(app, service=get_settings().service_name)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    app.include_router(webhooks_router, prefix="/v1")
    app.include_router(meetings_router, prefix="/v1")
    return app


setup_logging()

log.info(
    "api_gateway_starting",
    extra={
        "payload": {
            "service": get_settings().service_name,
            "app_env": get_settings().app_env,
            "queue_mode": get_settings().queue_mode,
        }
    },
)

app = _create_app()


def main() -> None:
    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=s.api_port, log_config=None)


if __name__ == "__main__":
    main()
