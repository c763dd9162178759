"""Tenant business settings: name, admin phone, tracking URL and message templates."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from printhub.core.dependencies import TenantContext, get_settings_store, get_tenant_context, require_manager
from printhub.core.logging import audit_logger
from printhub.schemas.settings import BusinessSettingsResponse, BusinessSettingsUpdate
from printhub.services.settings_store import BusinessSettings, SettingsStore
from printhub.services.templates import TEMPLATE_KEYS, resolve_template

router = APIRouter(prefix="/settings", tags=["Settings"])


def _to_response(business: BusinessSettings) -> BusinessSettingsResponse:
    return BusinessSettingsResponse(
        tenant_id=business.tenant_id,
        business_name=business.business_name,
        tracking_base_url=business.tracking_base_url,
        admin_phone=business.admin_phone,
        currency_symbol=business.currency_symbol,
        templates=business.templates,
        effective_templates={k: resolve_template(business.templates, k) for k in sorted(TEMPLATE_KEYS)},
    )


@router.get("", response_model=BusinessSettingsResponse)
async def read_settings(
    ctx: TenantContext = Depends(get_tenant_context),
    store: SettingsStore = Depends(get_settings_store),
):
    return _to_response(await store.get(ctx.tenant_id))


@router.put("", response_model=BusinessSettingsResponse)
async def update_settings(
    payload: BusinessSettingsUpdate,
    ctx: TenantContext = Depends(require_manager),
    store: SettingsStore = Depends(get_settings_store),
):
    """Partial update; templates are merged key by key."""
    changes = payload.model_dump(exclude_unset=True)
    business = await store.upsert(ctx.tenant_id, dict(changes))
    await store.session.commit()
    audit_logger.log_data_change(ctx.user_id, "update", "tenant_settings", ctx.tenant_id, changes)
    return _to_response(business)
