from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ================================
# HELPERS
# ================================
def _under_pytest() -> bool:
    return "PYTEST_CURRENT_TEST" in os.environ


def _mask_secret(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    s = str(val)
    if not s:
        return s
    if len(s) <= 6:
        return "***"
    return s[:3] + "***" + s[-3:]


def _parse_list_like(v):
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("[") and v.endswith("]"):
            try:
                parsed = json.loads(v)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(i).strip() for i in parsed if str(i).strip()]
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


def _is_secret_key_name(key: str) -> bool:
    lk = key.lower()
    if any(s in lk for s in ("secret", "password", "token", "dsn")):
        return True
    # broker/database URLs may carry credentials
    return lk.endswith("_url") and ("broker" in lk or "database" in lk or "backend" in lk)


def _mask_nested(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_secret_key_name(k) and not isinstance(v, (dict, list, tuple)):
                out[k] = _mask_secret(v)
            else:
                out[k] = _mask_nested(v)
        return out
    if isinstance(obj, list):
        return [_mask_nested(v) for v in obj]
    return obj


# ================================
# APPLICATION SETTINGS (Pydantic v2)
# ================================
class Settings(BaseSettings):
    """
    PrintHub configuration.

    - SQLite (aiosqlite) is the development default; production runs on PostgreSQL (asyncpg).
    - NOTIFICATIONS_BROKER_URL switches notification delivery to the Celery queue.
      Without it, messages go out synchronously through the direct channel.
    - No tenant is configured here: every call carries its own tenant context.
    """

    model_config = SettingsConfigDict(
        env_file=(".env.test", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ---- basics
    PROJECT_NAME: str = Field(default="PrintHub", description="Project name")
    VERSION: str = Field(default="0.1.0", description="Application version")
    ENVIRONMENT: str = Field(default="development", description="Environment")
    DEBUG: bool = Field(default=False, description="Debug mode")
    TESTING: bool = Field(default=False, description="Testing mode")
    API_PREFIX: str = Field(default="/api", description="API prefix")
    CORS_ORIGINS: List[str] = Field(default=["*"], description="CORS origins")

    # ---- database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./printhub.db",
        description="Async SQLAlchemy database URL",
    )
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")
    DB_AUTO_CREATE: bool = Field(default=False, description="Create tables on startup (dev/test)")

    # ---- logging
    LOG_PATH: str = Field(default="logs/printhub.log", description="Log file path")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="console", description="Logging format (json|console)")

    # ---- notifications / queue
    NOTIFICATIONS_BROKER_URL: Optional[str] = Field(
        default=None, description="Celery broker URL; unset means direct synchronous delivery"
    )
    CELERY_RESULT_BACKEND: Optional[str] = Field(default=None, description="Celery result backend")
    NOTIFICATION_QUEUE: str = Field(default="notifications", description="Celery queue for notification jobs")
    NOTIFICATION_MAX_RETRIES: int = Field(default=8, ge=0, description="Broker-side retry limit per job")
    NOTIFICATION_RETRY_BACKOFF_SECONDS: int = Field(default=5, ge=1, description="Initial retry backoff")
    NOTIFY_SEND_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0, description="Direct send timeout")

    # ---- messaging channel
    MESSAGING_PROVIDER: str = Field(default="none", description="whatsapp_gateway|none")
    WHATSAPP_GATEWAY_URL: Optional[str] = Field(default=None, description="WhatsApp gateway base URL")
    WHATSAPP_GATEWAY_TOKEN: Optional[str] = Field(default=None, description="WhatsApp gateway token")

    # ---- business defaults (used when a tenant has no stored settings)
    TRACKING_CODE_PREFIX: str = Field(default="PH", min_length=1, max_length=4, description="Tracking code tag")
    DEFAULT_BUSINESS_NAME: str = Field(default="PrintHub", description="Business name fallback")
    DEFAULT_TRACKING_BASE_URL: str = Field(
        default="http://localhost:3000/track", description="Public tracking page fallback"
    )

    # ---- authorization contract
    MANAGER_ROLES: List[str] = Field(default=["admin", "manager"], description="Roles allowed to mutate")

    # --------- validators ---------
    @field_validator("CORS_ORIGINS", "MANAGER_ROLES", mode="before")
    def _lists(cls, v):
        return _parse_list_like(v)

    @field_validator("TRACKING_CODE_PREFIX")
    def _prefix_upper(cls, v: str) -> str:
        v = v.strip().upper()
        if not v.isalnum():
            raise ValueError("TRACKING_CODE_PREFIX must be alphanumeric")
        return v

    @field_validator("MESSAGING_PROVIDER")
    def _provider(cls, v: str) -> str:
        v = (v or "none").strip().lower()
        if v not in {"none", "whatsapp_gateway"}:
            raise ValueError(f"Unsupported MESSAGING_PROVIDER: {v}")
        return v

    @field_validator("LOG_FORMAT")
    def _log_format(cls, v: str) -> str:
        v = (v or "console").strip().lower()
        return "json" if v == "json" else "console"

    # --------- convenience ---------
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_testing(self) -> bool:
        return bool(self.TESTING or _under_pytest())

    @property
    def queue_enabled(self) -> bool:
        return bool(self.NOTIFICATIONS_BROKER_URL)

    @property
    def sqlalchemy_async_url(self) -> str:
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def celery_settings(self) -> dict:
        return {
            "broker_url": self.NOTIFICATIONS_BROKER_URL,
            "result_backend": self.CELERY_RESULT_BACKEND,
            "queue": self.NOTIFICATION_QUEUE,
        }

    @property
    def build_info(self) -> dict:
        return {
            "project": self.PROJECT_NAME,
            "version": self.VERSION,
            "environment": self.ENVIRONMENT,
        }

    def dump_settings_safe(self) -> dict:
        return _mask_nested(self.model_dump())


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
