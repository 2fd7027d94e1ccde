"""
Жёсткий таймаут на внешний вызов.

Назначение:
- вызов идёт в daemon-потоке, вызывающий ждёт Future с таймаутом
- по таймауту бросаем LLMTimeoutError (retryable), поток бросаем
- поздний результат отброшенного вызова только логируется

Таймаут транспорта (requests timeout) тоже передаётся, но на него не полагаемся:
read-timeout requests не ограничивает общее время ответа.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TypeVar

from meeting_followup_agent.common.errors import LLMTimeoutError
from meeting_followup_agent.common.logging import get_llm_logger

from .base import LLMProvider, LLMResult

log = get_llm_logger()

T = TypeVar("T")


def call_bounded(fn: Callable[[], T], *, timeout_s: float, name: str = "external_call") -> T:
    future: Future[T] = Future()
    abandoned = threading.Event()
    started = time.monotonic()

    def _worker() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            if abandoned.is_set():
                log.info(
                    "bounded_call_late_result",
                    extra={"payload": {"name": name, "ok": False, "err": str(e)[:200]}},
                )
            return
        future.set_result(result)
        if abandoned.is_set():
            log.info(
                "bounded_call_late_result",
                extra={
                    "payload": {
                        "name": name,
                        "ok": True,
                        "elapsed_ms": int((time.monotonic() - started) * 1000),
                    }
                },
            )

    threading.Thread(target=_worker, name=f"bounded-{name}", daemon=True).start()

    try:
        return future.result(timeout=timeout_s)
    except FutureTimeoutError as e:
        abandoned.set()
        log.error(
            "bounded_call_timeout",
            extra={"payload": {"name": name, "timeout_s": timeout_s}},
        )
        raise LLMTimeoutError(timeout_s, {"name": name}) from e


def bounded_generate(
    provider: LLMProvider, system: str, user: str, max_tokens: int, timeout_s: float
) -> LLMResult:
    return call_bounded(
        lambda: provider.generate(
            system=system, user=user, max_tokens=max_tokens, timeout_s=timeout_s
        ),
        timeout_s=timeout_s,
        name=f"llm_{getattr(provider, 'name', 'provider')}",
    )
