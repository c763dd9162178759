"""
Tenant business settings schemas.
"""

from typing import Optional

from pydantic import Field

from printhub.schemas.base import BaseSchema


class BusinessSettingsUpdate(BaseSchema):
    business_name: Optional[str] = Field(None, max_length=255)
    admin_phone: Optional[str] = Field(None, max_length=32)
    currency_symbol: Optional[str] = Field(None, max_length=8)
    tracking_base_url: Optional[str] = Field(None, max_length=512)
    customer_message_templates: Optional[dict[str, str]] = None


class BusinessSettingsResponse(BaseSchema):
    tenant_id: str
    business_name: str
    tracking_base_url: str
    admin_phone: Optional[str]
    currency_symbol: str
    templates: dict[str, str] = Field(default_factory=dict, description="Tenant overrides only")
    effective_templates: dict[str, str] = Field(default_factory=dict, description="Overrides merged on defaults")
