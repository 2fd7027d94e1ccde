"""
Контекст одного прогона пайплайна.

Назначение:
- таймеры стадий (webhook -> транскрипт -> черновик) для одного run_id
- итоговая сводка: длительность и попадание в целевой бюджет
- жёсткий бюджет прогона (budget_s): внешние вызовы и паузы ретраев режутся
  по остатку, так что прогон завершается до целевого потолка

Объект создаёт вызывающий код верхнего уровня (роутер, воркер, джоба),
передаёт вниз явно и выбрасывает после finish(). Модульного состояния нет.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from meeting_followup_agent.common.config import get_settings
from meeting_followup_agent.common.ids import new_run_id
from meeting_followup_agent.common.logging import get_project_logger
from meeting_followup_agent.common.metrics import PIPELINE_STAGE_LATENCY_MS

log = get_project_logger()


class Stage:
    WEBHOOK_RECEIVED = "webhook_received"
    EVENT_HANDLED = "event_handled"
    MEETING_UPSERTED = "meeting_upserted"
    TRANSCRIPT_DOWNLOADED = "transcript_downloaded"
    TRANSCRIPT_PARSED = "transcript_parsed"
    TRANSCRIPT_STORED = "transcript_stored"
    MEETING_CLASSIFIED = "meeting_classified"
    LLM_CALL = "llm_call"
    DRAFT_SCORED = "draft_scored"
    DRAFT_STORED = "draft_stored"


@dataclass
class StageTiming:
    name: str
    duration_ms: float
    ok: bool
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineRun:
    service: str = "pipeline"
    run_id: str = field(default_factory=new_run_id)
    target_ms: int = field(default_factory=lambda: int(get_settings().pipeline_target_ms))
    budget_s: float = field(default_factory=lambda: float(get_settings().pipeline_budget_sec))
    started: float = field(default_factory=time.perf_counter)
    stages: list[StageTiming] = field(default_factory=list)
    finished_ms: float | None = None

    @contextmanager
    def stage(self, name: str, **meta: Any) -> Iterator[dict[str, Any]]:
        """
        Замер стадии. В yield отдаётся dict, куда стадия может дописать meta.
        Исключение не глотается: стадия помечается ok=False и ошибка летит дальше.
        """
        started = time.perf_counter()
        info: dict[str, Any] = dict(meta)
        ok = True
        try:
            yield info
        except BaseException:
            ok = False
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.stages.append(StageTiming(name=name, duration_ms=elapsed_ms, ok=ok, meta=info))
            PIPELINE_STAGE_LATENCY_MS.labels(service=self.service, stage=name).observe(elapsed_ms)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    def remaining_s(self) -> float:
        """Остаток бюджета прогона (сек), не меньше нуля."""
        return max(0.0, self.budget_s - self.elapsed_ms() / 1000)

    def cap_timeout(self, timeout_s: float) -> float:
        return min(float(timeout_s), self.remaining_s())

    def finish(self, *, status: str, **meta: Any) -> dict[str, Any]:
        self.finished_ms = self.elapsed_ms()
        summary = {
            "run_id": self.run_id,
            "status": status,
            "total_ms": round(self.finished_ms, 1),
            "target_ms": self.target_ms,
            "target_met": self.finished_ms < self.target_ms,
            "stages": [
                {"name": s.name, "ms": round(s.duration_ms, 1), "ok": s.ok} for s in self.stages
            ],
            **meta,
        }
        level = log.info if summary["target_met"] else log.warning
        level("pipeline_run_finished", extra={"payload": summary})
        return summary
