"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine с явными таймаутами (statement / pool)
- Контекстный менеджер для сессий
- Единая точка доступа к БД для всех сервисов
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from meeting_followup_agent.common.config import get_settings


def _engine_kwargs(dsn: str) -> dict[str, Any]:
    s = get_settings()
    if dsn.startswith("sqlite"):
        # busy timeout в секундах; соединения отдаются в threadpool FastAPI
        return {
            "connect_args": {
                "timeout": max(1.0, s.db_statement_timeout_ms / 1000.0),
                "check_same_thread": False,
            }
        }
    return {
        "pool_pre_ping": True,
        "pool_timeout": s.db_pool_timeout_sec,
        "connect_args": {
            "connect_timeout": max(1, s.db_statement_timeout_ms // 1000),
            "options": f"-c statement_timeout={int(s.db_statement_timeout_ms)}",
        },
    }


# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_settings = get_settings()

engine = create_engine(_settings.postgres_dsn, **_engine_kwargs(_settings.postgres_dsn))

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
