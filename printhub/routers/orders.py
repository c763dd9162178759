"""
Order endpoints: intake, edits, status transitions, delivery and the read side.

Reads need a tenant; everything that changes state needs a manager role.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from printhub.core.dependencies import (
    Pagination,
    TenantContext,
    get_order_manager,
    get_pagination,
    get_sale_reconciler,
    get_tenant_context,
    require_manager,
)
from printhub.schemas.base import Page
from printhub.schemas.order import (
    OrderCreate,
    OrderResponse,
    OrderSummary,
    OrderTimeline,
    OrderUpdate,
    ResendTrackingResponse,
    StatusChange,
)
from printhub.schemas.sale import DeliveryRegistration, DeliveryResponse, SaleResponse
from printhub.services.lifecycle import OrderDraft, OrderLifecycleManager
from printhub.services.pricing import LineItem
from printhub.services.sales import SaleReconciler

router = APIRouter(prefix="/orders", tags=["Orders"])


def _line_items(items) -> list[LineItem]:
    return [
        LineItem(
            product_name=i.product_name,
            quantity=i.quantity,
            unit_price=i.unit_price,
            product_id=i.product_id,
            is_custom=i.is_custom,
            unit_cost=i.unit_cost,
        )
        for i in items
    ]


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
@router.get("", response_model=Page[OrderResponse])
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    pagination: Pagination = Depends(get_pagination),
    ctx: TenantContext = Depends(get_tenant_context),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """List orders, newest first, filtered by status and created-date range."""
    orders, total = await manager.list_orders(
        ctx.tenant_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    return Page[OrderResponse].build(
        [OrderResponse.model_validate(o) for o in orders],
        total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/summary", response_model=OrderSummary)
async def order_summary(
    ctx: TenantContext = Depends(get_tenant_context),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    return await manager.summary(ctx.tenant_id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    return await manager.get_order(ctx.tenant_id, order_id)


@router.get("/{order_id}/timeline", response_model=OrderTimeline)
async def order_timeline(
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    return await manager.timeline(ctx.tenant_id, order_id)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    ctx: TenantContext = Depends(require_manager),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """Create a pending order: prices items, issues a tracking code, updates the client's totals."""
    draft = OrderDraft(
        client_name=payload.client_name,
        items=_line_items(payload.items),
        customer_contact=payload.customer_contact,
        origin=payload.origin,
        payment_method=payload.payment_method,
        deposit=payload.deposit,
        notes=payload.notes,
        files=[f.model_dump() for f in payload.files],
        due_date=payload.due_date,
    )
    return await manager.create_order(ctx.tenant_id, draft, user_id=ctx.user_id)


@router.patch("/{order_id}", response_model=OrderResponse)
async def edit_order(
    payload: OrderUpdate,
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """Edit non-status fields. New items recompute the total; profit is not re-estimated."""
    changes = payload.model_dump(exclude_unset=True, exclude={"items"})
    items = _line_items(payload.items) if payload.items is not None else None
    return await manager.edit_order(ctx.tenant_id, order_id, changes, items, user_id=ctx.user_id)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def change_status(
    payload: StatusChange,
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    """
    Move an order along pending → in_progress → completed, or cancel it.

    Starting production needs `printer_id` and `print_time_minutes`.
    `delivered` is rejected here; use the delivery endpoint.
    """
    return await manager.transition_status(
        ctx.tenant_id,
        order_id,
        payload.status,
        printer_id=payload.printer_id,
        print_time_minutes=payload.print_time_minutes,
        user_id=ctx.user_id,
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    return await manager.cancel_order(ctx.tenant_id, order_id, user_id=ctx.user_id)


@router.post("/{order_id}/delivery", response_model=DeliveryResponse)
async def register_delivery(
    payload: DeliveryRegistration,
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    reconciler: SaleReconciler = Depends(get_sale_reconciler),
):
    """Finalize cost, write the sale and mark the order delivered. Works once per order."""
    sale, order = await reconciler.register_delivery(
        ctx.tenant_id, order_id, payload.final_cost, user_id=ctx.user_id
    )
    return DeliveryResponse(sale=SaleResponse.model_validate(sale), order=OrderResponse.model_validate(order))


@router.post("/{order_id}/resend-tracking", response_model=ResendTrackingResponse)
async def resend_tracking(
    order_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(require_manager),
    manager: OrderLifecycleManager = Depends(get_order_manager),
):
    delivered = await manager.resend_tracking(ctx.tenant_id, order_id)
    order = await manager.get_order(ctx.tenant_id, order_id)
    return ResendTrackingResponse(delivered=delivered, tracking_code=order.tracking_code)
