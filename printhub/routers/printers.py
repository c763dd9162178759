"""Printer registry endpoints (operator side). Leasing happens through order status changes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from printhub.core.dependencies import TenantContext, get_printer_registry, get_tenant_context, require_manager
from printhub.core.logging import audit_logger
from printhub.models import PrinterStatus
from printhub.schemas.base import Ack
from printhub.schemas.printer import PrinterCreate, PrinterResponse, PrinterStatusUpdate
from printhub.services.printers import PrinterRegistry

router = APIRouter(prefix="/printers", tags=["Printers"])


@router.get("", response_model=list[PrinterResponse])
async def list_printers(
    status_filter: Optional[PrinterStatus] = Query(None, alias="status"),
    ctx: TenantContext = Depends(get_tenant_context),
    registry: PrinterRegistry = Depends(get_printer_registry),
):
    return await registry.list_printers(ctx.tenant_id, status_filter)


@router.get("/{printer_id}", response_model=PrinterResponse)
async def get_printer(
    printer_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    registry: PrinterRegistry = Depends(get_printer_registry),
):
    return await registry.get(ctx.tenant_id, printer_id)


@router.post("", response_model=PrinterResponse, status_code=status.HTTP_201_CREATED)
async def create_printer(
    payload: PrinterCreate,
    ctx: TenantContext = Depends(require_manager),
    registry: PrinterRegistry = Depends(get_printer_registry),
):
    printer = await registry.create_printer(ctx.tenant_id, payload.name, payload.model)
    await registry.session.commit()
    audit_logger.log_data_change(ctx.user_id, "create", "printer", printer.id, payload.model_dump())
    return printer


@router.put("/{printer_id}/status", response_model=PrinterResponse)
async def set_printer_status(
    payload: PrinterStatusUpdate,
    printer_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    registry: PrinterRegistry = Depends(get_printer_registry),
):
    """Toggle idle / maintenance. Rejected while the printer is printing."""
    printer = await registry.set_status(ctx.tenant_id, printer_id, PrinterStatus(payload.status))
    await registry.session.commit()
    audit_logger.log_data_change(ctx.user_id, "status_change", "printer", printer.id, {"status": payload.status})
    return printer


@router.delete("/{printer_id}", response_model=Ack)
async def delete_printer(
    printer_id: int = Path(..., ge=1),
    force: bool = Query(False, description="Delete even while printing; the order keeps its status"),
    ctx: TenantContext = Depends(require_manager),
    registry: PrinterRegistry = Depends(get_printer_registry),
):
    await registry.delete_printer(ctx.tenant_id, printer_id, force=force)
    await registry.session.commit()
    audit_logger.log_data_change(ctx.user_id, "delete", "printer", printer_id, {"force": force})
    return Ack(message="Printer deleted", data={"printer_id": printer_id, "forced": force})
