# printhub/services/lifecycle.py
"""
Order lifecycle: intake, the status state machine and its side effects.

pending ──start(printer)──▶ in_progress ──complete──▶ completed ──register delivery──▶ delivered
   └──────────────┴───────────── cancel ───────────────────┘

- start allocates a printer (failures propagate and block the transition)
- complete and cancel release whatever printer the order holds
- the admin "finished" alert is claimed with a conditional update before it is sent,
  so retried completions never alert twice
- delivered is reachable only through SaleReconciler.register_delivery
- customer notifications and the CRM update run after commit and never fail the call
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.exceptions import (
    InvalidTransitionError,
    MissingPrinterError,
    NotFoundError,
    PrintHubValidationError,
    ResourceBusyError,
)
from printhub.core.logging import audit_logger, get_logger
from printhub.core.metrics import ORDER_TRANSITIONS, ORDERS_CREATED, PRINTER_CONFLICTS
from printhub.models import (
    ALLOWED_TRANSITIONS,
    Order,
    OrderItem,
    OrderStatus,
    Sale,
    money,
    to_decimal,
    utc_now,
)
from printhub.services.crm import record_client_order
from printhub.services.deferred import DeferredTasks, run_isolated
from printhub.services.notifications import NotificationDispatcher, NotificationKind
from printhub.services.pricing import CatalogLookup, LineItem, SqlCatalog, enrich_items
from printhub.services.printers import PrinterRegistry
from printhub.services.settings_store import SettingsStore
from printhub.services.templates import RESEND_TRACKING_KEY
from printhub.services.tracking_codes import generate_tracking_code

logger = get_logger(__name__)

TRACKING_CODE_ATTEMPTS = 2

_EDITABLE_FIELDS = frozenset(
    {"client_name", "customer_contact", "origin", "payment_method", "deposit", "notes", "files", "due_date"}
)
_NOT_NULL_FIELDS = frozenset({"origin", "payment_method", "deposit", "files"})


@dataclass
class OrderDraft:
    client_name: str
    items: list[LineItem]
    customer_contact: Optional[str] = None
    origin: str = "local"
    payment_method: str = "cash"
    deposit: Decimal = Decimal("0")
    notes: Optional[str] = None
    files: list[dict[str, str]] = field(default_factory=list)
    due_date: Optional[datetime] = None


def parse_status(value: Any) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise PrintHubValidationError(
            f"Invalid status '{value}'",
            code="INVALID_STATUS",
            extra={"allowed": [s.value for s in OrderStatus]},
        ) from None


def _is_tracking_code_conflict(exc: IntegrityError) -> bool:
    return "tracking_code" in str(getattr(exc, "orig", exc)).lower()


class OrderLifecycleManager:
    def __init__(
        self,
        session: AsyncSession,
        *,
        notifier: NotificationDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: Optional[CatalogLookup] = None,
        deferred: Optional[DeferredTasks] = None,
        tracking_prefix: str = "PH",
        code_factory: Optional[Callable[[str], str]] = None,
    ):
        self.session = session
        self.notifier = notifier
        self.session_factory = session_factory
        self.catalog = catalog or SqlCatalog(session)
        self.printers = PrinterRegistry(session)
        self.deferred = deferred
        self.tracking_prefix = tracking_prefix
        self.code_factory = code_factory or generate_tracking_code

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _after_commit(self, name: str, fn, *args: Any) -> None:
        """Queue on the request's deferred tasks, or run now (isolated) when there are none."""
        if self.deferred is not None:
            self.deferred.add(name, fn, *args)
        else:
            await run_isolated(name, fn, *args)

    async def get_order(self, tenant_id: str, order_id: int) -> Order:
        order = (
            await self.session.execute(
                select(Order)
                .where(Order.id == order_id, Order.tenant_id == tenant_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", extra={"order_id": order_id})
        return order

    async def _send_customer_message(
        self,
        tenant_id: str,
        phone: str,
        client_name: str,
        tracking_code: str,
        template_key: str,
        status: str,
    ) -> bool:
        async with self.session_factory() as session:
            business = await SettingsStore(session).get(tenant_id)
        message = business.render(template_key, client_name=client_name, tracking_code=tracking_code, status=status)
        delivered = await self.notifier.notify(NotificationKind.CUSTOMER, tenant_id, message, phone=phone)
        if not delivered:
            logger.warning("customer_notification_not_delivered", tenant=tenant_id, tracking_code=tracking_code)
        return delivered

    async def _send_admin_alert(self, tenant_id: str, order_id: int, message: str) -> None:
        delivered = await self.notifier.notify(NotificationKind.ADMIN, tenant_id, message)
        if not delivered:
            logger.warning("admin_notification_not_delivered", tenant=tenant_id, order_id=order_id)

    async def notify_status_change(self, order: Order) -> None:
        if not order.customer_contact:
            return
        status = order.status.value
        await self._after_commit(
            f"notify_customer:{order.id}:{status}",
            self._send_customer_message,
            order.tenant_id,
            order.customer_contact,
            order.client_name,
            order.tracking_code,
            status,
            status,
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    async def create_order(self, tenant_id: str, draft: OrderDraft, *, user_id: Optional[str] = None) -> Order:
        client_name = (draft.client_name or "").strip()
        if not client_name:
            raise PrintHubValidationError("client_name is required", code="CLIENT_NAME_REQUIRED")
        if not draft.items:
            raise PrintHubValidationError("An order needs at least one item", code="ITEMS_REQUIRED")
        for item in draft.items:
            if int(item.quantity) <= 0 or to_decimal(item.unit_price) < 0:
                raise PrintHubValidationError(
                    f"Invalid quantity or price for item '{item.product_name}'",
                    extra={"product_name": item.product_name},
                )

        priced = await enrich_items(tenant_id, draft.items, self.catalog)

        order: Optional[Order] = None
        for attempt in range(1, TRACKING_CODE_ATTEMPTS + 1):
            order = Order(
                tenant_id=tenant_id,
                tracking_code=self.code_factory(self.tracking_prefix),
                client_name=client_name,
                customer_contact=(draft.customer_contact or "").strip() or None,
                origin=draft.origin or "local",
                payment_method=draft.payment_method or "cash",
                deposit=money(draft.deposit),
                notes=draft.notes,
                files=list(draft.files or []),
                due_date=draft.due_date,
                total=priced.total,
                profit=priced.estimated_profit,
                status=OrderStatus.PENDING,
                admin_notified=False,
                is_sale_registered=False,
                items=[
                    OrderItem(
                        position=pos,
                        product_id=p.product_id,
                        product_name=p.product_name,
                        quantity=p.quantity,
                        unit_price=p.unit_price,
                        unit_cost=p.unit_cost,
                        is_custom=p.is_custom,
                    )
                    for pos, p in enumerate(priced.items)
                ],
            )
            self.session.add(order)
            try:
                await self.session.commit()
                break
            except IntegrityError as e:
                await self.session.rollback()
                if attempt == TRACKING_CODE_ATTEMPTS or not _is_tracking_code_conflict(e):
                    raise
                logger.warning("tracking_code_collision", tenant=tenant_id, attempt=attempt)

        order = await self.get_order(tenant_id, order.id)
        ORDERS_CREATED.inc()
        audit_logger.log_data_change(
            user_id,
            "create",
            "order",
            order.id,
            {"tracking_code": order.tracking_code, "total": str(order.total), "profit": str(order.profit)},
        )

        await self._after_commit(
            f"crm_update:{order.id}",
            record_client_order,
            self.session_factory,
            tenant_id,
            order.client_name,
            order.total,
            order.created_at,
            order.origin,
        )
        await self.notify_status_change(order)
        return order

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------
    async def transition_status(
        self,
        tenant_id: str,
        order_id: int,
        status: Any,
        *,
        printer_id: Optional[int] = None,
        print_time_minutes: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> Order:
        target = parse_status(status)
        if target == OrderStatus.DELIVERED:
            raise PrintHubValidationError(
                "Orders become delivered only by registering the delivery",
                code="DELIVERY_REQUIRES_RECONCILIATION",
            )

        order = await self.get_order(tenant_id, order_id)
        current = order.status

        if target == current:
            if target == OrderStatus.COMPLETED:
                # retried completion: make sure the machine is free and the alert went out once
                await self.printers.release(tenant_id, order.id)
                alert = await self._claim_admin_alert(order)
                await self.session.commit()
                if alert:
                    await self._after_commit(f"admin_alert:{order.id}", self._send_admin_alert, tenant_id, order.id, alert)
                return await self.get_order(tenant_id, order.id)
            return order

        if order.is_terminal:
            raise InvalidTransitionError(
                f"Order is already {current.value}", extra={"from": current.value, "to": target.value}
            )
        if target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(
                f"Transition {current.value} → {target.value} is not allowed",
                extra={"from": current.value, "to": target.value},
            )

        if target == OrderStatus.IN_PROGRESS:
            if printer_id is None:
                raise MissingPrinterError("printer_id is required to start production")
            if print_time_minutes is None or int(print_time_minutes) <= 0:
                raise PrintHubValidationError(
                    "print_time_minutes must be a positive estimate", code="PRINT_TIME_REQUIRED"
                )
            order = await self._start(order, int(printer_id), int(print_time_minutes))
        elif target == OrderStatus.COMPLETED:
            order = await self._complete(order)
        else:
            order = await self._cancel(order)

        ORDER_TRANSITIONS.labels(current.value, order.status.value).inc()
        audit_logger.log_data_change(
            user_id,
            "status_change",
            "order",
            order.id,
            {"from": current.value, "to": order.status.value, "printer_id": order.printer_id},
        )
        await self.notify_status_change(order)
        return order

    async def _start(self, order: Order, printer_id: int, print_time_minutes: int) -> Order:
        # allocation errors (NotFound / ResourceBusy) leave the order untouched
        try:
            await self.printers.allocate(order.tenant_id, printer_id, order.id)
        except ResourceBusyError:
            PRINTER_CONFLICTS.inc()
            await self.session.rollback()
            raise
        except NotFoundError:
            await self.session.rollback()
            raise
        order.status = OrderStatus.IN_PROGRESS
        order.started_at = utc_now()
        order.print_time_minutes = print_time_minutes
        order.printer_id = printer_id
        await self.session.commit()
        return await self.get_order(order.tenant_id, order.id)

    async def _claim_admin_alert(self, order: Order) -> Optional[str]:
        """Flip admin_notified false → true; only the winner gets the message to send."""
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.admin_notified.is_(False))
            .values(admin_notified=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        names = ", ".join(order.item_names) or "-"
        return f"Order finished: {order.client_name} ({order.tracking_code})\nItems: {names}"

    async def _complete(self, order: Order) -> Order:
        order.status = OrderStatus.COMPLETED
        order.finished_at = utc_now()
        await self.session.flush()
        await self.printers.release(order.tenant_id, order.id)
        alert = await self._claim_admin_alert(order)
        await self.session.commit()
        if alert:
            await self._after_commit(f"admin_alert:{order.id}", self._send_admin_alert, order.tenant_id, order.id, alert)
        return await self.get_order(order.tenant_id, order.id)

    async def _cancel(self, order: Order) -> Order:
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = utc_now()
        await self.session.flush()
        await self.printers.release(order.tenant_id, order.id)
        await self.session.commit()
        return await self.get_order(order.tenant_id, order.id)

    async def cancel_order(self, tenant_id: str, order_id: int, *, user_id: Optional[str] = None) -> Order:
        return await self.transition_status(tenant_id, order_id, OrderStatus.CANCELLED, user_id=user_id)

    # ------------------------------------------------------------------
    # edits
    # ------------------------------------------------------------------
    async def edit_order(
        self,
        tenant_id: str,
        order_id: int,
        changes: dict[str, Any],
        items: Optional[Sequence[LineItem]] = None,
        *,
        user_id: Optional[str] = None,
    ) -> Order:
        """
        Update non-status fields. A new item list replaces the old one and recomputes
        total; cost enrichment is not re-run and profit is left as it was.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise PrintHubValidationError(
                f"Fields not editable: {', '.join(sorted(unknown))}", extra={"editable": sorted(_EDITABLE_FIELDS)}
            )
        if "client_name" in changes and not (changes["client_name"] or "").strip():
            raise PrintHubValidationError("client_name cannot be empty", code="CLIENT_NAME_REQUIRED")
        cleared = sorted(k for k in _NOT_NULL_FIELDS if k in changes and changes[k] is None)
        if cleared:
            raise PrintHubValidationError(
                f"Fields cannot be cleared: {', '.join(cleared)}", code="FIELD_REQUIRED", extra={"fields": cleared}
            )
        if items is not None and not items:
            raise PrintHubValidationError("An order needs at least one item", code="ITEMS_REQUIRED")

        order = await self.get_order(tenant_id, order_id)
        if items is not None and order.status == OrderStatus.DELIVERED:
            raise InvalidTransitionError("Items of a delivered order are frozen in its sale record")

        for key, value in changes.items():
            if key == "deposit":
                value = money(value)
            setattr(order, key, value)

        if items is not None:
            # catalog costs captured at creation survive an edit; new catalog lines cost 0
            known_costs = {
                i.product_id: i.unit_cost for i in order.items if i.product_id is not None and not i.is_custom
            }
            order.items.clear()
            for pos, item in enumerate(items):
                order.items.append(
                    OrderItem(
                        position=pos,
                        product_id=item.product_id,
                        product_name=item.product_name,
                        quantity=int(item.quantity),
                        unit_price=money(item.unit_price),
                        unit_cost=(
                            money(item.unit_cost) if item.is_custom else money(known_costs.get(item.product_id, 0))
                        ),
                        is_custom=bool(item.is_custom),
                    )
                )
            order.recalculate_total()

        await self.session.commit()
        audit_logger.log_data_change(
            user_id,
            "update",
            "order",
            order.id,
            {**{k: str(v) for k, v in changes.items()}, "items_replaced": items is not None},
        )
        return await self.get_order(tenant_id, order.id)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    async def list_orders(
        self,
        tenant_id: str,
        *,
        status: Optional[Any] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        conditions = [Order.tenant_id == tenant_id]
        if status is not None:
            conditions.append(Order.status == parse_status(status))
        if date_from is not None:
            conditions.append(Order.created_at >= date_from)
        if date_to is not None:
            conditions.append(Order.created_at <= date_to)

        total = (await self.session.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()
        rows = (
            await self.session.execute(
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(offset)
                .limit(limit)
            )
        ).scalars().all()
        return list(rows), int(total)

    async def timeline(self, tenant_id: str, order_id: int) -> dict[str, Any]:
        order = await self.get_order(tenant_id, order_id)
        events = [
            ("created", order.created_at),
            ("started", order.started_at),
            ("finished", order.finished_at),
            ("delivered", order.delivered_at),
            ("cancelled", order.cancelled_at),
        ]
        return {
            "order_id": order.id,
            "tracking_code": order.tracking_code,
            "status": order.status.value,
            "created_at": order.created_at,
            "started_at": order.started_at,
            "finished_at": order.finished_at,
            "delivered_at": order.delivered_at,
            "cancelled_at": order.cancelled_at,
            "events": [{"event": name, "at": at} for name, at in events if at is not None],
        }

    async def summary(self, tenant_id: str) -> dict[str, Any]:
        counts: Counter[str] = Counter({s.value: 0 for s in OrderStatus})
        rows = await self.session.execute(
            select(Order.status, func.count(Order.id)).where(Order.tenant_id == tenant_id).group_by(Order.status)
        )
        for status, n in rows.all():
            counts[status.value if isinstance(status, OrderStatus) else str(status)] = int(n)

        revenue: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        profit: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        sales = await self.session.execute(
            select(Sale.created_at, Sale.price, Sale.profit).where(Sale.tenant_id == tenant_id)
        )
        for created_at, price, sale_profit in sales.all():
            month = created_at.strftime("%Y-%m")
            revenue[month] += to_decimal(price)
            profit[month] += to_decimal(sale_profit)

        avg = (
            await self.session.execute(
                select(func.avg(Order.customer_satisfaction)).where(
                    Order.tenant_id == tenant_id, Order.customer_satisfaction.is_not(None)
                )
            )
        ).scalar_one_or_none()

        return {
            "total_orders": sum(counts.values()),
            "counts_by_status": dict(counts),
            "monthly_revenue": [
                {"month": m, "revenue": money(revenue[m]), "profit": money(profit[m])} for m in sorted(revenue)
            ],
            "average_satisfaction": round(float(avg), 2) if avg is not None else None,
        }

    # ------------------------------------------------------------------
    # resend tracking
    # ------------------------------------------------------------------
    async def resend_tracking(self, tenant_id: str, order_id: int) -> bool:
        """Send the tracking link again. Synchronous: returns whether it was delivered/enqueued."""
        order = await self.get_order(tenant_id, order_id)
        if not order.customer_contact:
            raise PrintHubValidationError("Order has no customer contact", code="CONTACT_REQUIRED")
        return await self._send_customer_message(
            tenant_id,
            order.customer_contact,
            order.client_name,
            order.tracking_code,
            RESEND_TRACKING_KEY,
            order.status.value,
        )


__all__ = ["OrderLifecycleManager", "OrderDraft", "parse_status"]
