# printhub/models/order.py
"""
Order / OrderItem: the production order and its line items.

- single canonical status enum with explicit allowed transitions
- `delivered` is absent from ALLOWED_TRANSITIONS targets: only delivery
  reconciliation (services/sales.py) moves an order there
- money is Numeric(14, 2) handled as Decimal
- time is naive UTC
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship, validates

from printhub.models.base import Base, enum_values, money, to_decimal, utc_now
from printhub.models.types import JSONBCompat


# ---------------------------------------------------------------------------
# Enums and allowed transitions
# ---------------------------------------------------------------------------
class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Canonical production path; index drives the public progress percentage.
STATUS_PROGRESSION: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.IN_PROGRESS,
    OrderStatus.COMPLETED,
    OrderStatus.DELIVERED,
)

ALLOWED_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: {OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def compute_total(items: Iterable[Any]) -> Decimal:
    """Σ unit_price × quantity. Order of items does not matter."""
    total = Decimal("0")
    for item in items:
        total += to_decimal(item.unit_price) * int(item.quantity)
    return money(total)


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime, default=utc_now, nullable=False, onupdate=utc_now)

    tenant_id = Column(String(64), nullable=False, index=True)
    tracking_code = Column(String(32), nullable=False, unique=True, index=True)

    # client-facing data
    client_name = Column(String(255), nullable=False)
    customer_contact = Column(String(64), nullable=True)
    origin = Column(String(64), nullable=False, default="local")
    payment_method = Column(String(64), nullable=False, default="cash")
    deposit = Column(Numeric(14, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    files = Column(JSONBCompat, nullable=False, default=list)
    due_date = Column(DateTime, nullable=True)

    # financials
    total = Column(Numeric(14, 2), nullable=False, default=0)
    profit = Column(Numeric(14, 2), nullable=False, default=0)

    # lifecycle
    status = Column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    printer_id = Column(Integer, nullable=True)  # last printer used; the live lease lives on printers
    print_time_minutes = Column(Integer, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    admin_notified = Column(Boolean, nullable=False, default=False)
    is_sale_registered = Column(Boolean, nullable=False, default=False)

    # feedback
    customer_satisfaction = Column(Integer, nullable=True)
    customer_feedback = Column(Text, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="order_total_non_negative"),
        CheckConstraint(
            "customer_satisfaction IS NULL OR (customer_satisfaction BETWEEN 1 AND 5)",
            name="order_satisfaction_range",
        ),
        Index("ix_orders_tenant_status", "tenant_id", "status"),
        Index("ix_orders_tenant_created", "tenant_id", "created_at"),
    )

    # ------------------------ Validation ------------------------
    @validates("client_name")
    def _validate_client_name(self, _k: str, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("client_name must be non-empty")
        return v

    # ------------------------ Properties ------------------------
    @property
    def item_names(self) -> list[str]:
        return [i.product_name for i in self.items]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def recalculate_total(self) -> None:
        """Recompute total from items. Profit stays as last estimated/reconciled."""
        self.total = compute_total(self.items)

    def __repr__(self):
        return f"<Order id={self.id} code={self.tracking_code} status={getattr(self.status, 'value', self.status)}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(Integer, nullable=True, index=True)
    product_name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)
    is_custom = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0 AND unit_cost >= 0", name="order_item_amounts_non_negative"),
    )

    @property
    def line_total(self) -> Decimal:
        return money(to_decimal(self.unit_price) * int(self.quantity or 0))

    def __repr__(self):
        return f"<OrderItem id={self.id} order={self.order_id} name={self.product_name!r} qty={self.quantity}>"


__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "ALLOWED_TRANSITIONS",
    "STATUS_PROGRESSION",
    "TERMINAL_STATUSES",
    "compute_total",
]
