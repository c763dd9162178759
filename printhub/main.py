"""
PrintHub FastAPI application.

Startup picks the notification strategy once (queued when a broker is configured,
direct otherwise) and stores it on app.state; every request reuses it.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.config import get_settings
from printhub.core.db import close_db_async, get_session_factory, health_check_db_async, init_db_async
from printhub.core.dependencies import get_sessionmaker
from printhub.core.exceptions import register_exception_handlers
from printhub.core.metrics import render_latest
from printhub.core.logging import LoggingContextMiddleware, get_logger, log_startup_summary, setup_logging
from printhub.routers import ledger, orders, printers, settings as settings_router, tracking
from printhub.services.notifications import NotificationDispatcher, build_dispatcher

logger = get_logger(__name__)


async def _check_broker(url: Optional[str], timeout: float = 2.0) -> dict[str, Any]:
    if not url:
        return {"ok": True, "detail": "skipped"}
    if not url.startswith(("redis://", "rediss://")):
        return {"ok": True, "detail": "not_probed"}
    client = aioredis.from_url(url, socket_timeout=timeout)
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
        return {"ok": True, "detail": "ok"}
    except asyncio.TimeoutError:
        return {"ok": False, "detail": "broker_timeout"}
    except RedisError as e:
        return {"ok": False, "detail": f"broker_error:{e!s}"}
    finally:
        await client.aclose()


# ======================================================================================
# LIFESPAN
# ======================================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging()
    if settings.DB_AUTO_CREATE:
        await init_db_async()

    if getattr(app.state, "dispatcher", None) is None:
        app.state.dispatcher = build_dispatcher(settings, get_session_factory())
    log_startup_summary(app.state.dispatcher.mode)
    try:
        yield
    finally:
        await close_db_async()
        logger.info("application_shutdown")


# ======================================================================================
# APP FACTORY
# ======================================================================================
def create_app(dispatcher: Optional[NotificationDispatcher] = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    if dispatcher is not None:
        app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(LoggingContextMiddleware)
    register_exception_handlers(app)

    for module in (orders, printers, ledger, settings_router, tracking):
        app.include_router(module.router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health(
        request: Request,
        session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    ) -> dict[str, Any]:
        current = getattr(request.app.state, "dispatcher", None)
        db = await health_check_db_async(session_factory)
        broker = await _check_broker(settings.NOTIFICATIONS_BROKER_URL)
        return {
            "status": "ok" if db["ok"] and broker["ok"] else "degraded",
            **settings.build_info,
            "dispatcher": current.mode if current is not None else None,
            "database": db,
            "broker": broker,
        }

    @app.get("/metrics", tags=["Health"], include_in_schema=False)
    async def metrics() -> Response:
        data, content_type = render_latest()
        return Response(content=data, media_type=content_type)

    return app


app = create_app()
