"""
Sale and CRM client schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field

from printhub.schemas.base import BaseSchema
from printhub.schemas.order import OrderResponse


class DeliveryRegistration(BaseSchema):
    # blank or non-numeric values count as 0
    final_cost: Optional[Any] = Field(None, description="Realized production cost")


class SaleResponse(BaseSchema):
    id: int
    order_id: int
    label: str
    quantity: int
    price: Decimal
    cost: Decimal
    profit: Decimal
    category: str
    created_at: datetime


class DeliveryResponse(BaseSchema):
    sale: SaleResponse
    order: OrderResponse


class ClientResponse(BaseSchema):
    id: int
    name: str
    source: Optional[str]
    total_spent: Decimal
    order_count: int
    last_order_date: Optional[datetime]
