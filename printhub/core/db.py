# printhub/core/db.py
"""
Async database configuration and session management for PrintHub.

Highlights:
- Lazy engine creation (no connections at import time).
- Postgres URLs are converted to postgresql+asyncpg://, plain sqlite:// to sqlite+aiosqlite://.
- pytest friendly: NullPool for file-backed SQLite so concurrent sessions never share a connection.
- Utilities: get_async_db(), get_session_factory(), init_db_async(), close_db_async(),
  health_check_db_async().
"""

from __future__ import annotations

import time as _time
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from printhub.core.config import get_settings
from printhub.core.logging import get_logger

logger = get_logger(__name__)

_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_fk(eng: AsyncEngine) -> None:
    @event.listens_for(eng.sync_engine, "connect")
    def _fk_pragma(dbapi_conn, _record):  # pragma: no cover - driver hook
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine with options suited to the backend."""
    if url.startswith("sqlite"):
        # file-backed SQLite: one connection per checkout keeps concurrent sessions honest
        eng = create_async_engine(url, echo=echo, poolclass=NullPool, connect_args={"timeout": 30})
        _enable_sqlite_fk(eng)
        return eng
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


def _get_async_engine() -> AsyncEngine:
    global _async_engine
    if _async_engine is None:
        settings = get_settings()
        _async_engine = build_engine(settings.sqlalchemy_async_url, echo=settings.DB_ECHO)
        logger.info("async_engine_created", dialect=_async_engine.dialect.name)
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=_get_async_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


async def get_async_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request, rolled back on error."""
    session = get_session_factory()()
    try:
        yield session
    except SQLAlchemyError:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db_async(drop_all: bool = False) -> None:
    from printhub.models import Base

    eng = _get_async_engine()
    async with eng.begin() as conn:
        if drop_all:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_schema_ready", drop_all=drop_all)


async def close_db_async() -> None:
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None


async def health_check_db_async(session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> dict:
    started = _time.perf_counter()
    factory = session_factory or get_session_factory()
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
        return {"ok": True, "latency_ms": round((_time.perf_counter() - started) * 1000.0, 2)}
    except SQLAlchemyError as e:
        logger.warning("db_health_failed", error=str(e))
        return {"ok": False, "error": str(e)}


__all__ = [
    "build_engine",
    "get_async_db",
    "get_session_factory",
    "init_db_async",
    "close_db_async",
    "health_check_db_async",
]
