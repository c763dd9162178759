# printhub/models/printer.py
from __future__ import annotations

import enum

from sqlalchemy import CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint

from printhub.models.base import Base, enum_values, utc_now


class PrinterStatus(str, enum.Enum):
    IDLE = "idle"
    PRINTING = "printing"
    MAINTENANCE = "maintenance"


class Printer(Base):
    """
    A physical production unit. Serves at most one order at a time.

    `current_order_id` is set iff status == printing; the check constraint keeps the pair
    consistent and the unique constraint stops one order from holding two machines.
    """

    __tablename__ = "printers"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False, onupdate=utc_now)

    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    model = Column(String(128), nullable=False, default="generic")
    status = Column(
        SQLEnum(PrinterStatus, name="printer_status", values_callable=enum_values),
        nullable=False,
        default=PrinterStatus.IDLE,
        index=True,
    )
    current_order_id = Column(ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(status = 'printing' AND current_order_id IS NOT NULL) "
            "OR (status <> 'printing' AND current_order_id IS NULL)",
            name="printer_occupant_matches_status",
        ),
        UniqueConstraint("current_order_id", name="uq_printers_current_order"),
    )

    def __repr__(self):
        return f"<Printer id={self.id} name={self.name!r} status={getattr(self.status, 'value', self.status)}>"
