"""
Public tracking schemas (no internal ids, no cost or profit).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from printhub.models.order import OrderStatus
from printhub.schemas.base import BaseSchema


class PublicItem(BaseSchema):
    product_name: str
    quantity: int


class PublicOrder(BaseSchema):
    tracking_code: str
    client_name: str
    status: OrderStatus
    progress: int = Field(..., ge=0, le=100)
    items: list[PublicItem]
    total: Decimal
    deposit: Decimal
    created_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    delivered_at: Optional[datetime]
    due_date: Optional[datetime]
    customer_satisfaction: Optional[int]
    customer_feedback: Optional[str]


class FeedbackSubmit(BaseSchema):
    # range is checked by the gateway so out-of-range ratings surface as INVALID_RATING
    rating: int
    text: Optional[str] = Field(None, max_length=2000)
