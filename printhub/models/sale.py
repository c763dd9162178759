# printhub/models/sale.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from printhub.models.base import Base, utc_now

SERVICE_SALE_CATEGORY = "service"


class Sale(Base):
    """
    Immutable ledger entry written when an order is delivered.

    One row per order at most (unique order_id); never updated afterwards.
    """

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    tenant_id = Column(String(64), nullable=False, index=True)
    order_id = Column(ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, unique=True)
    label = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(14, 2), nullable=False)
    cost = Column(Numeric(14, 2), nullable=False, default=0)
    profit = Column(Numeric(14, 2), nullable=False)
    category = Column(String(64), nullable=False, default=SERVICE_SALE_CATEGORY)

    def __repr__(self):
        return f"<Sale id={self.id} order={self.order_id} price={self.price} profit={self.profit}>"
