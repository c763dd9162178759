# printhub/models/product.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from printhub.models.base import Base, utc_now


class Product(Base):
    """Catalog entry. Only the read side (unit cost lookup) is used by order intake."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(14, 2), nullable=False, default=0)
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)
