from __future__ import annotations

import asyncio
import logging
import os
import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from alembic import context

# =============================================================================
# Project root on sys.path
# =============================================================================
THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = THIS_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from printhub.core.config import get_settings  # noqa: E402
from printhub.models import Base  # noqa: E402  (registers every table)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


# =============================================================================
# Database URL
# =============================================================================
def get_database_url() -> str:
    """
    Priority:
      1) ALEMBIC_DATABASE_URL
      2) printhub Settings (DATABASE_URL, normalized to an async driver)
    """
    url = (os.getenv("ALEMBIC_DATABASE_URL") or "").strip()
    if url:
        return url
    return get_settings().sqlalchemy_async_url


DATABASE_URL = get_database_url()
config.set_main_option("sqlalchemy.url", DATABASE_URL)

target_metadata = Base.metadata


def _detect_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name().startswith("sqlite")


def process_revision_directives(context_: Any, revision: Any, directives: list[Any]) -> None:
    """Drop empty autogenerate revisions."""
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No schema changes detected; skipping empty revision.")


def make_context_kwargs(connection: Connection) -> dict[str, Any]:
    return dict(
        connection=connection,
        target_metadata=target_metadata,
        process_revision_directives=process_revision_directives,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=_detect_sqlite(str(connection.engine.url)),
    )


# =============================================================================
# Offline
# =============================================================================
def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        process_revision_directives=process_revision_directives,
        literal_binds=True,
        compare_type=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


# =============================================================================
# Online (async engine: asyncpg / aiosqlite)
# =============================================================================
def _run_migrations_sync(connection: Connection) -> None:
    context.configure(**make_context_kwargs(connection))
    with context.begin_transaction():
        context.run_migrations()


async def _run_migrations_async(async_engine: AsyncEngine) -> None:
    async with async_engine.connect() as connection:
        logger.info("Connected (async) to database: %s", connection.engine.url)
        await connection.run_sync(_run_migrations_sync)


def run_migrations_online() -> None:
    async_engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        asyncio.run(_run_migrations_async(async_engine))
    except OperationalError as exc:
        logger.error("Database connection failed: %s", exc)
        raise
    finally:
        async_engine.sync_engine.dispose()


if context.is_offline_mode():
    logger.info("Running migrations in OFFLINE mode")
    run_migrations_offline()
else:
    logger.info("Running migrations in ONLINE mode")
    run_migrations_online()
