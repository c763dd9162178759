# printhub/core/logging.py
"""
Logging for PrintHub: stdlib dictConfig underneath, structlog on top.

- console + rotating app log + rotating error log, plus a separate audit.log
  fed by the "printhub.audit" logger
- JSON renderer in production or with LOG_FORMAT=json, console renderer otherwise
- request context (request_id, tenant, user_id, client_ip) lives in one ContextVar
  and is merged into every event
- secret-looking keys are masked before rendering
- LoggingContextMiddleware binds the context per request, logs access lines and
  records the HTTP metrics

Env knobs (via Settings): LOG_PATH, LOG_LEVEL, LOG_FORMAT
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

import structlog

from printhub.core.config import get_settings
from printhub.core.metrics import HTTP_LATENCY, HTTP_REQUESTS, path_label

AUDIT_LOGGER_NAME = "printhub.audit"
CONTEXT_KEYS = ("request_id", "tenant", "user_id", "client_ip")

_log_context: ContextVar[Dict[str, str]] = ContextVar("printhub_log_context", default={})
_configured = False

_SECRET_MARKERS = ("secret", "password", "token", "api_key", "authorization")
_ROTATE_BYTES = 10 * 1024 * 1024


# ---------- redaction ----------
def _mask(value: Any) -> str:
    s = str(value)
    return "***" if len(s) <= 6 else f"{s[:3]}***{s[-3:]}"


def _is_secret_key(key: Any) -> bool:
    k = str(key).lower()
    return "public" not in k and any(marker in k for marker in _SECRET_MARKERS)


def redact_secrets(data: Any) -> Any:
    """Mask values under secret-looking keys, recursively through dicts, lists and tuples."""
    if isinstance(data, dict):
        return {k: (_mask(v) if _is_secret_key(k) else redact_secrets(v)) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return type(data)(redact_secrets(v) for v in data)
    return data


# ---------- processors ----------
def _merge_request_context(_, __, event_dict):
    for key, value in _log_context.get().items():
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def _redact(_, __, event_dict):
    return redact_secrets(event_dict)


def _stamp_service(_, __, event_dict):
    settings = get_settings()
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("version", settings.VERSION)
    return event_dict


# ---------- stdlib handlers ----------
def _rotating(filename: str, level: str, formatter: str = "detailed") -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": filename,
        "maxBytes": _ROTATE_BYTES,
        "backupCount": 5,
        "encoding": "utf8",
    }


def _dict_config(log_path: str, level: str) -> dict:
    logs_dir = os.path.dirname(log_path) or "logs"
    os.makedirs(logs_dir, exist_ok=True)
    everywhere = ["console", "app_file", "error_file"]

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(message)s"},
            "detailed": {
                "format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "plain",
                "stream": "ext://sys.stdout",
            },
            "app_file": _rotating(log_path, "DEBUG"),
            "error_file": _rotating(os.path.join(logs_dir, "errors.log"), "ERROR"),
            "audit_file": _rotating(os.path.join(logs_dir, "audit.log"), "INFO", formatter="plain"),
        },
        "loggers": {
            "": {"handlers": everywhere, "level": level, "propagate": False},
            AUDIT_LOGGER_NAME: {"handlers": ["audit_file", "console"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["console", "app_file"], "level": "INFO", "propagate": False},
            "celery": {"handlers": everywhere, "level": level, "propagate": False},
            "sqlalchemy.engine": {"handlers": ["app_file"], "level": "WARNING", "propagate": False},
        },
    }


def _structlog_processors(json_output: bool) -> list:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _merge_request_context,
        _stamp_service,
        _redact,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(),
    ]


# ---------- public API ----------
def setup_logging() -> None:
    """Configure stdlib handlers and structlog once per process."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = (settings.LOG_LEVEL or "INFO").upper()
    logging.config.dictConfig(_dict_config(settings.LOG_PATH, level))
    structlog.configure(
        processors=_structlog_processors(settings.LOG_FORMAT == "json" or settings.is_production),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True

    log = get_logger(__name__)
    log.info("logging_initialized", log_path=os.path.abspath(settings.LOG_PATH), level=level)
    log.debug("settings", **settings.dump_settings_safe())


def get_logger(name: str):
    return structlog.get_logger(name)


def _cleaned(values: Dict[str, Any]) -> Dict[str, str]:
    return {k: str(v) for k, v in values.items() if k in CONTEXT_KEYS and v is not None}


def clear_context() -> None:
    _log_context.set({})


def bind_context(**values: Any) -> None:
    """Merge values into the current context until clear_context() or the task ends."""
    _log_context.set({**_log_context.get(), **_cleaned(values)})


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    token = _log_context.set({**_log_context.get(), **_cleaned(values)})
    try:
        yield
    finally:
        _log_context.reset(token)


def log_startup_summary(dispatcher_mode: str) -> None:
    settings = get_settings()
    get_logger("printhub.startup").info(
        "startup_summary",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        dispatcher=dispatcher_mode,
        queue=settings.NOTIFICATION_QUEUE if settings.queue_enabled else None,
        messaging_provider=settings.MESSAGING_PROVIDER,
        python=sys.version.split()[0],
    )


# ---------- audit ----------
class AuditLogger:
    """Who changed what: orders, printers, deliveries, tenant settings."""

    def __init__(self):
        self.logger = get_logger(AUDIT_LOGGER_NAME)

    def log_data_change(
        self,
        user_id: int | str | None,
        action: str,
        resource_type: str,
        resource_id: str | int,
        changes: dict[str, Any],
    ) -> None:
        self.logger.info(
            "data_change",
            actor=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            changes=redact_secrets(changes),
        )

    def log_permission_denied(self, user_id: int | str | None, reason: str, resource: str) -> None:
        self.logger.warning("permission_denied", actor=user_id, reason=reason, resource=resource)


audit_logger = AuditLogger()


# ---------- ASGI middleware ----------
class LoggingContextMiddleware:
    """Binds request context, echoes X-Request-ID, logs one line per request, records HTTP metrics."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        headers = {k.decode().lower(): v.decode() for k, v in scope.get("headers", [])}
        request_id = headers.get("x-request-id") or headers.get("x-correlation-id") or uuid.uuid4().hex
        client = scope.get("client") or ("", 0)
        method = scope.get("method", "")
        path = scope.get("path", "")
        status = {"code": 500}

        async def _send(message):
            if message["type"] == "http.response.start":
                status["code"] = message.get("status", 200)
                message["headers"] = [*message.get("headers", []), (b"x-request-id", request_id.encode())]
            await send(message)

        started = time.perf_counter()
        with bound_context(
            request_id=request_id,
            client_ip=client[0] if client else None,
            tenant=headers.get("x-tenant-id"),
            user_id=headers.get("x-user-id"),
        ):
            try:
                await self.app(scope, receive, _send)
            finally:
                elapsed = time.perf_counter() - started
                label = path_label(path)
                HTTP_REQUESTS.labels(method, label, str(status["code"])).inc()
                HTTP_LATENCY.labels(method, label).observe(elapsed)
                get_logger("printhub.http").info(
                    "request",
                    method=method,
                    path=path,
                    status=status["code"],
                    duration_ms=round(elapsed * 1000.0, 2),
                )


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "bound_context",
    "clear_context",
    "redact_secrets",
    "log_startup_summary",
    "audit_logger",
    "AuditLogger",
    "LoggingContextMiddleware",
]
