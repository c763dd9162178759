"""Read-only ledgers: sales and CRM client aggregates."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printhub.core.db import get_async_db
from printhub.core.dependencies import (
    Pagination,
    TenantContext,
    get_pagination,
    get_sale_reconciler,
    get_tenant_context,
)
from printhub.schemas.sale import ClientResponse, SaleResponse
from printhub.services.crm import list_clients
from printhub.services.sales import SaleReconciler

router = APIRouter(tags=["Ledger"])


@router.get("/sales", response_model=list[SaleResponse])
async def list_sales(
    pagination: Pagination = Depends(get_pagination),
    ctx: TenantContext = Depends(get_tenant_context),
    reconciler: SaleReconciler = Depends(get_sale_reconciler),
):
    return await reconciler.list_sales(ctx.tenant_id, offset=pagination.offset, limit=pagination.limit)


@router.get("/clients", response_model=list[ClientResponse])
async def get_clients(
    limit: int = Query(100, ge=1, le=500),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_async_db),
):
    """Clients ordered by total spent."""
    return await list_clients(db, ctx.tenant_id, limit=limit)
