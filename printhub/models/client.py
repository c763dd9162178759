# printhub/models/client.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, Numeric, String, UniqueConstraint

from printhub.models.base import Base, utc_now


class Client(Base):
    """CRM aggregate: running totals per distinct customer name within a tenant."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False, onupdate=utc_now)

    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    source = Column(String(64), nullable=True)
    total_spent = Column(Numeric(14, 2), nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)
    last_order_date = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_clients_tenant_name"),)
