"""
Order Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from printhub.models.order import OrderStatus
from printhub.schemas.base import BaseSchema


class OrderItemCreate(BaseSchema):
    """Line item as entered by the operator."""

    product_id: Optional[int] = None
    product_name: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    is_custom: bool = False
    unit_cost: Optional[Decimal] = Field(None, ge=0, description="Only used for custom items")


class OrderItemResponse(BaseSchema):
    position: int
    product_id: Optional[int]
    product_name: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    is_custom: bool
    line_total: Decimal


class OrderFile(BaseSchema):
    name: str
    url: str


class OrderCreate(BaseSchema):
    client_name: str = Field(..., max_length=255)
    customer_contact: Optional[str] = Field(None, max_length=64)
    origin: str = Field("local", max_length=64)
    payment_method: str = Field("cash", max_length=64)
    deposit: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None
    files: list[OrderFile] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    items: list[OrderItemCreate] = Field(default_factory=list)


class OrderUpdate(BaseSchema):
    """Partial edit. Status is changed only through the status endpoint."""

    client_name: Optional[str] = Field(None, max_length=255)
    customer_contact: Optional[str] = Field(None, max_length=64)
    origin: Optional[str] = Field(None, max_length=64)
    payment_method: Optional[str] = Field(None, max_length=64)
    deposit: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    files: Optional[list[OrderFile]] = None
    due_date: Optional[datetime] = None
    items: Optional[list[OrderItemCreate]] = None


class StatusChange(BaseSchema):
    # plain string so unknown values reach the domain validation (422 with INVALID_STATUS)
    status: str
    printer_id: Optional[int] = None
    print_time_minutes: Optional[int] = None

    @field_validator("status")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class OrderResponse(BaseSchema):
    id: int
    tracking_code: str
    client_name: str
    customer_contact: Optional[str]
    origin: str
    payment_method: str
    deposit: Decimal
    notes: Optional[str]
    files: list[dict] = Field(default_factory=list)
    due_date: Optional[datetime]
    total: Decimal
    profit: Decimal
    status: OrderStatus
    printer_id: Optional[int]
    print_time_minutes: Optional[int]
    admin_notified: bool
    is_sale_registered: bool
    customer_satisfaction: Optional[int]
    customer_feedback: Optional[str]
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    items: list[OrderItemResponse] = Field(default_factory=list)


class TimelineEvent(BaseSchema):
    event: str
    at: datetime


class OrderTimeline(BaseSchema):
    order_id: int
    tracking_code: str
    status: OrderStatus
    created_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    events: list[TimelineEvent]


class MonthlyRevenue(BaseSchema):
    month: str
    revenue: Decimal
    profit: Decimal


class OrderSummary(BaseSchema):
    total_orders: int
    counts_by_status: dict[str, int]
    monthly_revenue: list[MonthlyRevenue]
    average_satisfaction: Optional[float]


class ResendTrackingResponse(BaseSchema):
    delivered: bool
    tracking_code: str
