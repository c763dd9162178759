"""
Printer schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from printhub.models.printer import PrinterStatus
from printhub.schemas.base import BaseSchema


class PrinterCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    model: Optional[str] = Field(None, max_length=255)


class PrinterStatusUpdate(BaseSchema):
    status: PrinterStatus


class PrinterResponse(BaseSchema):
    id: int
    name: str
    model: str
    status: PrinterStatus
    current_order_id: Optional[int]
    created_at: datetime
    updated_at: datetime
