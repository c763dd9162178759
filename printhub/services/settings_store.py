# printhub/services/settings_store.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printhub.core.config import get_settings
from printhub.core.exceptions import PrintHubValidationError
from printhub.models import TenantSettings
from printhub.services.templates import TEMPLATE_KEYS, build_tracking_url, render_template, resolve_template


@dataclass
class BusinessSettings:
    """Effective settings for one tenant, defaults already applied."""

    tenant_id: str
    business_name: str
    tracking_base_url: str
    admin_phone: Optional[str] = None
    currency_symbol: str = "$"
    templates: dict[str, str] = field(default_factory=dict)

    def tracking_url(self, tracking_code: str) -> str:
        return build_tracking_url(self.tracking_base_url, tracking_code)

    def render(self, key: str, *, client_name: str, tracking_code: str, status: str) -> str:
        return render_template(
            resolve_template(self.templates, key),
            {
                "clientName": client_name,
                "trackingCode": tracking_code,
                "status": status,
                "trackingUrl": self.tracking_url(tracking_code),
                "businessName": self.business_name,
            },
        )


class SettingsStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _row(self, tenant_id: str) -> Optional[TenantSettings]:
        return (
            await self.session.execute(select(TenantSettings).where(TenantSettings.tenant_id == tenant_id))
        ).scalar_one_or_none()

    async def get(self, tenant_id: str) -> BusinessSettings:
        cfg = get_settings()
        row = await self._row(tenant_id)
        if row is None:
            return BusinessSettings(
                tenant_id=tenant_id,
                business_name=cfg.DEFAULT_BUSINESS_NAME,
                tracking_base_url=cfg.DEFAULT_TRACKING_BASE_URL,
            )
        return BusinessSettings(
            tenant_id=tenant_id,
            business_name=row.business_name or cfg.DEFAULT_BUSINESS_NAME,
            tracking_base_url=row.tracking_base_url or cfg.DEFAULT_TRACKING_BASE_URL,
            admin_phone=row.admin_phone or None,
            currency_symbol=row.currency_symbol or "$",
            templates=dict(row.customer_message_templates or {}),
        )

    async def upsert(self, tenant_id: str, changes: dict[str, Any]) -> BusinessSettings:
        """Partial update; template keys are merged, unknown keys rejected. Caller commits."""
        templates = changes.pop("customer_message_templates", None)
        if templates:
            unknown = set(templates) - TEMPLATE_KEYS
            if unknown:
                raise PrintHubValidationError(
                    f"Unknown template keys: {', '.join(sorted(unknown))}",
                    extra={"allowed": sorted(TEMPLATE_KEYS)},
                )

        row = await self._row(tenant_id)
        if row is None:
            row = TenantSettings(tenant_id=tenant_id, customer_message_templates={})
            self.session.add(row)

        for key, value in changes.items():
            setattr(row, key, value)
        if templates:
            merged = dict(row.customer_message_templates or {})
            merged.update(templates)
            row.customer_message_templates = merged

        await self.session.flush()
        return await self.get(tenant_id)


__all__ = ["BusinessSettings", "SettingsStore"]
