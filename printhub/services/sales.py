# printhub/services/sales.py
"""
Delivery reconciliation: the only path into `delivered`.

One transaction: claim the order (is_sale_registered false → true), stamp it delivered
with the realized profit, write the Sale row, release any printer still bound to it.
A second call finds nothing to claim and raises AlreadyRegisteredError, so every
delivered order has exactly one sale.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.exceptions import AlreadyRegisteredError, InvalidTransitionError
from printhub.core.logging import audit_logger, get_logger
from printhub.core.metrics import ORDER_TRANSITIONS, SALES_REGISTERED
from printhub.models import SERVICE_SALE_CATEGORY, Order, OrderStatus, Sale, money, utc_now
from printhub.services.deferred import DeferredTasks
from printhub.services.lifecycle import OrderLifecycleManager
from printhub.services.notifications import NotificationDispatcher
from printhub.services.printers import PrinterRegistry

logger = get_logger(__name__)


def parse_final_cost(value: Any) -> Decimal:
    """Absent, blank or non-numeric costs count as 0."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return Decimal("0.00")
    raw = str(value).strip()
    if not raw:
        return Decimal("0.00")
    try:
        parsed = Decimal(raw)
    except InvalidOperation:
        return Decimal("0.00")
    if not parsed.is_finite():
        return Decimal("0.00")
    return money(parsed)


class SaleReconciler:
    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: NotificationDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        deferred: Optional[DeferredTasks] = None,
    ):
        self.session = session
        self.printers = PrinterRegistry(session)
        self.orders = OrderLifecycleManager(
            session, notifier=notifier, session_factory=session_factory, deferred=deferred
        )
        self.deferred = deferred

    async def register_delivery(
        self,
        tenant_id: str,
        order_id: int,
        final_cost: Any = None,
        *,
        user_id: Optional[str] = None,
    ) -> tuple[Sale, Order]:
        order = await self.orders.get_order(tenant_id, order_id)
        if order.is_sale_registered:
            raise AlreadyRegisteredError(
                f"Delivery of order {order.tracking_code} is already registered",
                extra={"order_id": order.id},
            )
        if order.status == OrderStatus.CANCELLED:
            raise InvalidTransitionError(
                f"Order {order.tracking_code} is cancelled and cannot be delivered",
                extra={"order_id": order.id, "status": order.status.value},
            )

        previous = order.status.value
        cost = parse_final_cost(final_cost)
        profit = money(order.total) - cost
        now = utc_now()

        claimed = await self.session.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.tenant_id == tenant_id,
                Order.is_sale_registered.is_(False),
                Order.status != OrderStatus.CANCELLED,
            )
            .values(
                is_sale_registered=True,
                status=OrderStatus.DELIVERED,
                delivered_at=now,
                profit=profit,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            code, oid = order.tracking_code, order.id
            await self.session.rollback()
            raise AlreadyRegisteredError(f"Delivery of order {code} is already registered", extra={"order_id": oid})

        sale = Sale(
            tenant_id=tenant_id,
            order_id=order.id,
            label=f"Order {order.tracking_code}: {order.client_name}",
            quantity=1,
            price=money(order.total),
            cost=cost,
            profit=profit,
            category=SERVICE_SALE_CATEGORY,
        )
        self.session.add(sale)
        await self.printers.release(tenant_id, order.id)
        await self.session.commit()

        order = await self.orders.get_order(tenant_id, order.id)
        SALES_REGISTERED.inc()
        ORDER_TRANSITIONS.labels(previous, OrderStatus.DELIVERED.value).inc()
        logger.info(
            "sale_registered",
            tenant=tenant_id,
            order_id=order.id,
            sale_id=sale.id,
            price=str(sale.price),
            profit=str(sale.profit),
        )
        audit_logger.log_data_change(
            user_id,
            "register_delivery",
            "order",
            order.id,
            {"sale_id": sale.id, "cost": str(cost), "profit": str(profit)},
        )
        await self.orders.notify_status_change(order)
        return sale, order

    async def list_sales(self, tenant_id: str, *, offset: int = 0, limit: int = 50) -> list[Sale]:
        stmt = (
            select(Sale)
            .where(Sale.tenant_id == tenant_id)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list((await self.session.execute(stmt)).scalars().all())


__all__ = ["SaleReconciler", "parse_final_cost"]
