# printhub/core/dependencies.py
from __future__ import annotations

"""
FastAPI dependencies:
- Tenant context from the auth gateway headers (X-Tenant-ID / X-User-ID / X-User-Role)
- Manager role check for mutating endpoints
- Pagination
- Service builders wired to the request session, the startup dispatcher and
  a per-request DeferredTasks that runs after the response (BackgroundTasks)
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.config import get_settings
from printhub.core.db import get_async_db, get_session_factory
from printhub.core.exceptions import AuthorizationError, PrintHubValidationError
from printhub.core.logging import audit_logger, bind_context, get_logger
from printhub.services.deferred import DeferredTasks
from printhub.services.lifecycle import OrderLifecycleManager
from printhub.services.notifications import NotificationDispatcher
from printhub.services.printers import PrinterRegistry
from printhub.services.sales import SaleReconciler
from printhub.services.settings_store import SettingsStore
from printhub.services.tracking import TrackingGateway

log = get_logger(__name__)


# ------------------------------------------------------------------------------
# Tenant context
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    user_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        roles = {r.lower() for r in get_settings().MANAGER_ROLES}
        return bool(self.role) and self.role.lower() in roles


async def get_tenant_context(
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-ID"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> TenantContext:
    tenant = (x_tenant_id or "").strip()
    if not tenant:
        raise PrintHubValidationError("X-Tenant-ID header is required", code="TENANT_REQUIRED")
    ctx = TenantContext(
        tenant_id=tenant,
        user_id=(x_user_id or "").strip() or None,
        role=(x_user_role or "").strip() or None,
    )
    bind_context(tenant=ctx.tenant_id, user_id=ctx.user_id)
    return ctx


async def require_manager(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    if not ctx.is_manager:
        audit_logger.log_permission_denied(ctx.user_id, f"role={ctx.role!r}", "orders")
        raise AuthorizationError("Manager role required", extra={"role": ctx.role})
    return ctx


# ------------------------------------------------------------------------------
# Pagination
# ------------------------------------------------------------------------------
@dataclass
class Pagination:
    page: int = 1
    per_page: int = 20
    max_per_page: int = 100

    def __post_init__(self):
        self.page = max(1, int(self.page or 1))
        p = int(self.per_page or 20)
        self.per_page = min(self.max_per_page, max(1, p))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


def get_pagination(page: int = 1, per_page: int = 20) -> Pagination:
    return Pagination(page=page, per_page=per_page)


# ------------------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------------------
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_dispatcher(request: Request) -> NotificationDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise RuntimeError("Notification dispatcher is not initialised (application lifespan did not run)")
    return dispatcher


def get_deferred(background_tasks: BackgroundTasks) -> DeferredTasks:
    deferred = DeferredTasks()
    background_tasks.add_task(deferred.run_all)
    return deferred


def get_order_manager(
    db: AsyncSession = Depends(get_async_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    deferred: DeferredTasks = Depends(get_deferred),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(
        db,
        notifier=dispatcher,
        session_factory=session_factory,
        deferred=deferred,
        tracking_prefix=get_settings().TRACKING_CODE_PREFIX,
    )


def get_sale_reconciler(
    db: AsyncSession = Depends(get_async_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    deferred: DeferredTasks = Depends(get_deferred),
) -> SaleReconciler:
    return SaleReconciler(db, notifier=dispatcher, session_factory=session_factory, deferred=deferred)


def get_printer_registry(db: AsyncSession = Depends(get_async_db)) -> PrinterRegistry:
    return PrinterRegistry(db)


def get_settings_store(db: AsyncSession = Depends(get_async_db)) -> SettingsStore:
    return SettingsStore(db)


def get_tracking_gateway(db: AsyncSession = Depends(get_async_db)) -> TrackingGateway:
    return TrackingGateway(db)


__all__ = [
    "TenantContext",
    "get_tenant_context",
    "require_manager",
    "Pagination",
    "get_pagination",
    "get_sessionmaker",
    "get_dispatcher",
    "get_deferred",
    "get_order_manager",
    "get_sale_reconciler",
    "get_printer_registry",
    "get_settings_store",
    "get_tracking_gateway",
]
