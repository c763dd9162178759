# printhub/services/printers.py
"""
Printer registry: exclusive lease of physical printers to orders.

Allocation is a single conditional UPDATE (status must still be idle), so two
concurrent starts on the same machine cannot both win. Release is keyed by the
order, not the printer, and is a no-op when nothing is bound to that order.

Methods flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from printhub.core.exceptions import ConflictError, NotFoundError, PrintHubValidationError, ResourceBusyError
from printhub.core.logging import get_logger
from printhub.models import Printer, PrinterStatus, utc_now

logger = get_logger(__name__)


class PrinterRegistry:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    async def get(self, tenant_id: str, printer_id: int) -> Printer:
        printer = (
            await self.session.execute(
                select(Printer)
                .where(Printer.id == printer_id, Printer.tenant_id == tenant_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if printer is None:
            raise NotFoundError(f"Printer {printer_id} not found", extra={"printer_id": printer_id})
        return printer

    async def list_printers(self, tenant_id: str, status: Optional[PrinterStatus] = None) -> list[Printer]:
        stmt = select(Printer).where(Printer.tenant_id == tenant_id).order_by(Printer.name, Printer.id)
        if status is not None:
            stmt = stmt.where(Printer.status == status)
        return list((await self.session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # lease
    # ------------------------------------------------------------------
    async def allocate(self, tenant_id: str, printer_id: int, order_id: int) -> Printer:
        """Compare-and-swap idle → printing. Raises NotFoundError or ResourceBusyError."""
        result = await self.session.execute(
            update(Printer)
            .where(
                Printer.id == printer_id,
                Printer.tenant_id == tenant_id,
                Printer.status == PrinterStatus.IDLE,
            )
            .values(status=PrinterStatus.PRINTING, current_order_id=order_id, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info("printer_allocated", tenant=tenant_id, printer_id=printer_id, order_id=order_id)
            return await self.get(tenant_id, printer_id)

        printer = await self.get(tenant_id, printer_id)
        occupant = printer.current_order_id
        status = printer.status.value if isinstance(printer.status, PrinterStatus) else str(printer.status)
        if occupant is not None:
            message = f"Printer '{printer.name}' is busy with order {occupant}"
        else:
            message = f"Printer '{printer.name}' is not available (status: {status})"
        raise ResourceBusyError(
            message,
            extra={"printer_id": printer.id, "printer_name": printer.name, "status": status, "current_order_id": occupant},
        )

    async def release(self, tenant_id: str, order_id: int) -> int:
        """Free every printer bound to the order. Returns how many were freed (0 is fine)."""
        result = await self.session.execute(
            update(Printer)
            .where(Printer.tenant_id == tenant_id, Printer.current_order_id == order_id)
            .values(status=PrinterStatus.IDLE, current_order_id=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount or 0
        if released:
            logger.info("printer_released", tenant=tenant_id, order_id=order_id, count=released)
        return released

    # ------------------------------------------------------------------
    # operator actions
    # ------------------------------------------------------------------
    async def create_printer(self, tenant_id: str, name: str, model: Optional[str] = None) -> Printer:
        name = (name or "").strip()
        if not name:
            raise PrintHubValidationError("Printer name is required")
        printer = Printer(tenant_id=tenant_id, name=name, model=(model or "generic").strip() or "generic")
        self.session.add(printer)
        await self.session.flush()
        return printer

    async def set_status(self, tenant_id: str, printer_id: int, status: PrinterStatus) -> Printer:
        """Operator toggle between idle and maintenance. Printing is only entered through allocate()."""
        if status == PrinterStatus.PRINTING:
            raise PrintHubValidationError("Printers enter 'printing' only by starting an order")
        result = await self.session.execute(
            update(Printer)
            .where(
                Printer.id == printer_id,
                Printer.tenant_id == tenant_id,
                Printer.status != PrinterStatus.PRINTING,
            )
            .values(status=status, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            printer = await self.get(tenant_id, printer_id)
            raise ResourceBusyError(
                f"Printer '{printer.name}' is printing order {printer.current_order_id}; finish it first",
                extra={"printer_id": printer.id, "current_order_id": printer.current_order_id},
            )
        return await self.get(tenant_id, printer_id)

    async def delete_printer(self, tenant_id: str, printer_id: int, *, force: bool = False) -> None:
        """Reject deleting a printing machine unless forced; forcing leaves the order untouched."""
        printer = await self.get(tenant_id, printer_id)
        if printer.status == PrinterStatus.PRINTING and not force:
            raise ConflictError(
                f"Printer '{printer.name}' is printing order {printer.current_order_id}",
                code="PRINTER_IN_USE",
                extra={"printer_id": printer.id, "current_order_id": printer.current_order_id},
            )
        await self.session.delete(printer)
        await self.session.flush()
        logger.info("printer_deleted", tenant=tenant_id, printer_id=printer_id, forced=force)


__all__ = ["PrinterRegistry"]
