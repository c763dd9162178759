# printhub/models/tenant_settings.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String

from printhub.models.base import Base, utc_now
from printhub.models.types import JSONBCompat


class TenantSettings(Base):
    """Per-tenant business settings; missing rows/fields fall back to defaults."""

    __tablename__ = "tenant_settings"

    id = Column(Integer, primary_key=True)
    updated_at = Column(DateTime, default=utc_now, nullable=False, onupdate=utc_now)

    tenant_id = Column(String(64), nullable=False, unique=True)
    business_name = Column(String(255), nullable=True)
    admin_phone = Column(String(32), nullable=True)
    currency_symbol = Column(String(8), nullable=False, default="$")
    tracking_base_url = Column(String(512), nullable=True)
    customer_message_templates = Column(JSONBCompat, nullable=False, default=dict)
