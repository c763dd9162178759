from decimal import Decimal

import pytest
from sqlalchemy import func, select

from printhub.core.exceptions import (
    InvalidTransitionError,
    MissingPrinterError,
    NotFoundError,
    PrintHubValidationError,
    ResourceBusyError,
)
from printhub.models import Client, Order, OrderStatus, PrinterStatus
from printhub.services.deferred import DeferredTasks
from printhub.services.lifecycle import OrderDraft, OrderLifecycleManager
from printhub.services.notifications import NotificationKind
from printhub.services.pricing import LineItem
from printhub.services.printers import PrinterRegistry
from printhub.services.tracking_codes import tracking_code_pattern
from tests.conftest import OTHER_TENANT, TENANT


def _draft(**overrides) -> OrderDraft:
    data = dict(client_name="Ana", items=[LineItem("Vase", 2, Decimal("100"))])
    data.update(overrides)
    return OrderDraft(**data)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_create_order_without_contact(manager, dispatcher):
    order = await manager.create_order(TENANT, _draft())

    assert order.status == OrderStatus.PENDING
    assert order.total == Decimal("200.00")
    assert order.profit == Decimal("200.00")
    assert order.admin_notified is False
    assert order.is_sale_registered is False
    assert order.origin == "local" and order.payment_method == "cash"
    assert tracking_code_pattern("PH").match(order.tracking_code)
    assert dispatcher.calls == []


@pytest.mark.asyncio
async def test_create_order_estimates_profit_from_catalog(manager):
    draft = _draft(
        items=[
            LineItem("Vase", 2, Decimal("100"), product_id=1),
            LineItem("Unknown", 1, Decimal("10"), product_id=404),
        ]
    )
    order = await manager.create_order(TENANT, draft)

    assert order.total == Decimal("210.00")
    assert order.profit == Decimal("150.00")
    assert [i.unit_cost for i in order.items] == [Decimal("30.00"), Decimal("0.00")]


@pytest.mark.asyncio
async def test_create_order_with_contact_notifies_customer(manager, dispatcher):
    order = await manager.create_order(TENANT, _draft(customer_contact="+54 9 11 5555-0000"))

    [call] = dispatcher.calls
    assert call["kind"] == NotificationKind.CUSTOMER
    assert call["phone"] == "+54 9 11 5555-0000"
    assert order.tracking_code in call["message"]
    assert f"?code={order.tracking_code}" in call["message"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "draft",
    [
        _draft(client_name="   "),
        _draft(items=[]),
        _draft(items=[LineItem("Vase", 0, Decimal("10"))]),
    ],
)
async def test_create_order_rejects_bad_input(manager, session, draft):
    with pytest.raises(PrintHubValidationError):
        await manager.create_order(TENANT, draft)
    assert (await session.execute(select(func.count(Order.id)))).scalar_one() == 0


@pytest.mark.asyncio
async def test_create_order_updates_client_aggregate(manager, session):
    await manager.create_order(TENANT, _draft(client_name="Ana"))
    await manager.create_order(TENANT, _draft(client_name="Ana", items=[LineItem("Gear", 1, Decimal("50"))]))

    client = (await session.execute(select(Client).where(Client.name == "Ana"))).scalar_one()
    assert client.order_count == 2
    assert client.total_spent == Decimal("250.00")
    assert client.source == "local"


@pytest.mark.asyncio
async def test_crm_failure_does_not_fail_creation(session, session_factory, dispatcher, catalog, monkeypatch):
    async def boom(*_args, **_kwargs):
        raise RuntimeError("crm down")

    monkeypatch.setattr("printhub.services.lifecycle.record_client_order", boom)
    manager = OrderLifecycleManager(session, notifier=dispatcher, session_factory=session_factory, catalog=catalog)

    order = await manager.create_order(TENANT, _draft())
    assert order.id is not None


@pytest.mark.asyncio
async def test_tracking_code_collision_is_retried(session, session_factory, dispatcher, catalog):
    codes = iter(["PH-AAAAAAAAA", "PH-AAAAAAAAA", "PH-BBBBBBBBB"])
    manager = OrderLifecycleManager(
        session,
        notifier=dispatcher,
        session_factory=session_factory,
        catalog=catalog,
        code_factory=lambda _prefix: next(codes),
    )
    first_code = (await manager.create_order(TENANT, _draft())).tracking_code
    second = await manager.create_order(TENANT, _draft(client_name="Bruno"))

    assert first_code == "PH-AAAAAAAAA"
    assert second.tracking_code == "PH-BBBBBBBBB"
    assert second.client_name == "Bruno"


@pytest.mark.asyncio
async def test_deferred_side_effects_wait_for_run_all(session, session_factory, dispatcher, catalog):
    deferred = DeferredTasks()
    manager = OrderLifecycleManager(
        session, notifier=dispatcher, session_factory=session_factory, catalog=catalog, deferred=deferred
    )
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))

    assert dispatcher.calls == []
    assert deferred.names == [f"crm_update:{order.id}", f"notify_customer:{order.id}:pending"]

    await deferred.run_all()
    assert len(dispatcher.calls) == 1
    assert len(deferred) == 0


# ---------------------------------------------------------------------------
# transitions
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_happy_path_through_completion(manager, dispatcher, make_printer, session):
    printer = await make_printer("X")
    order = await manager.create_order(TENANT, _draft())

    started = await manager.transition_status(
        TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=60
    )
    assert started.status == OrderStatus.IN_PROGRESS
    assert started.started_at is not None
    assert started.print_time_minutes == 60
    assert started.printer_id == printer.id
    assert (await PrinterRegistry(session).get(TENANT, printer.id)).status == PrinterStatus.PRINTING

    done = await manager.transition_status(TENANT, order.id, "completed")
    assert done.status == OrderStatus.COMPLETED
    assert done.finished_at is not None
    assert done.admin_notified is True
    idle = await PrinterRegistry(session).get(TENANT, printer.id)
    assert idle.status == PrinterStatus.IDLE and idle.current_order_id is None

    [alert] = dispatcher.of_kind(NotificationKind.ADMIN)
    assert "Ana" in alert["message"] and "Vase" in alert["message"]
    assert dispatcher.of_kind(NotificationKind.CUSTOMER) == []


@pytest.mark.asyncio
async def test_repeated_completion_alerts_admin_once(manager, dispatcher, make_printer):
    printer = await make_printer()
    order = await manager.create_order(TENANT, _draft())
    await manager.transition_status(TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=30)

    for _ in range(3):
        done = await manager.transition_status(TENANT, order.id, "completed")
        assert done.admin_notified is True

    assert len(dispatcher.of_kind(NotificationKind.ADMIN)) == 1


@pytest.mark.asyncio
async def test_status_change_notifies_customer_with_matching_template(manager, dispatcher, make_printer):
    printer = await make_printer()
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))
    await manager.transition_status(TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=30)

    customer = dispatcher.of_kind(NotificationKind.CUSTOMER)
    assert len(customer) == 2
    assert "queued" in customer[0]["message"]
    assert "being printed" in customer[1]["message"]


@pytest.mark.asyncio
async def test_undelivered_customer_notification_does_not_fail_transition(
    session, session_factory, catalog, make_printer
):
    from tests.conftest import RecordingDispatcher

    failing = RecordingDispatcher(result=False)
    manager = OrderLifecycleManager(session, notifier=failing, session_factory=session_factory, catalog=catalog)
    printer = await make_printer()
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))

    started = await manager.transition_status(
        TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=5
    )
    assert started.status == OrderStatus.IN_PROGRESS
    assert len(failing.calls) == 2


@pytest.mark.asyncio
async def test_busy_printer_leaves_order_pending(manager, make_printer, session):
    printer = await make_printer("X")
    a_id = (await manager.create_order(TENANT, _draft())).id
    b_id = (await manager.create_order(TENANT, _draft(client_name="Bruno"))).id
    await manager.transition_status(TENANT, a_id, "in_progress", printer_id=printer.id, print_time_minutes=60)

    with pytest.raises(ResourceBusyError):
        await manager.transition_status(TENANT, b_id, "in_progress", printer_id=printer.id, print_time_minutes=60)

    assert (await manager.get_order(TENANT, b_id)).status == OrderStatus.PENDING
    still = await PrinterRegistry(session).get(TENANT, printer.id)
    assert still.status == PrinterStatus.PRINTING
    assert still.current_order_id == a_id


@pytest.mark.asyncio
async def test_start_requires_printer_and_estimate(manager, make_printer):
    printer = await make_printer()
    oid = (await manager.create_order(TENANT, _draft())).id

    with pytest.raises(MissingPrinterError):
        await manager.transition_status(TENANT, oid, "in_progress", print_time_minutes=10)
    with pytest.raises(PrintHubValidationError):
        await manager.transition_status(TENANT, oid, "in_progress", printer_id=printer.id)
    with pytest.raises(NotFoundError):
        await manager.transition_status(TENANT, oid, "in_progress", printer_id=999, print_time_minutes=10)

    assert (await manager.get_order(TENANT, oid)).status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["imprimiendo", "", "DONE"])
async def test_unknown_status_is_rejected_before_side_effects(manager, dispatcher, bad):
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))
    before = len(dispatcher.calls)

    with pytest.raises(PrintHubValidationError) as exc:
        await manager.transition_status(TENANT, order.id, bad)
    assert exc.value.code == "INVALID_STATUS"
    assert len(dispatcher.calls) == before


@pytest.mark.asyncio
async def test_delivered_cannot_be_set_directly(manager):
    order = await manager.create_order(TENANT, _draft())
    with pytest.raises(PrintHubValidationError) as exc:
        await manager.transition_status(TENANT, order.id, "delivered")
    assert exc.value.code == "DELIVERY_REQUIRES_RECONCILIATION"


@pytest.mark.asyncio
async def test_transitions_outside_the_state_machine(manager):
    order = await manager.create_order(TENANT, _draft())
    with pytest.raises(InvalidTransitionError):
        await manager.transition_status(TENANT, order.id, "completed")

    await manager.cancel_order(TENANT, order.id)
    with pytest.raises(InvalidTransitionError) as exc:
        await manager.transition_status(TENANT, order.id, "pending")
    assert exc.value.extra == {"from": "cancelled", "to": "pending"}
    assert "already cancelled" in exc.value.message


@pytest.mark.asyncio
async def test_same_status_is_a_no_op(manager, dispatcher):
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))
    again = await manager.transition_status(TENANT, order.id, "PENDING")
    assert again.status == OrderStatus.PENDING
    assert len(dispatcher.calls) == 1


@pytest.mark.asyncio
async def test_cancel_releases_printer_and_notifies(manager, dispatcher, make_printer, session):
    printer = await make_printer()
    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))
    await manager.transition_status(TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=15)

    cancelled = await manager.cancel_order(TENANT, order.id)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert (await PrinterRegistry(session).get(TENANT, printer.id)).status == PrinterStatus.IDLE
    assert "cancelled" in dispatcher.of_kind(NotificationKind.CUSTOMER)[-1]["message"]


@pytest.mark.asyncio
async def test_orders_are_tenant_scoped(manager):
    order = await manager.create_order(TENANT, _draft())
    with pytest.raises(NotFoundError):
        await manager.get_order(OTHER_TENANT, order.id)
    with pytest.raises(NotFoundError):
        await manager.transition_status(OTHER_TENANT, order.id, "cancelled")


# ---------------------------------------------------------------------------
# edits
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_edit_items_recomputes_total_but_keeps_profit(manager):
    order = await manager.create_order(TENANT, _draft(items=[LineItem("Vase", 2, Decimal("100"), product_id=1)]))
    assert order.profit == Decimal("140.00")

    edited = await manager.edit_order(
        TENANT,
        order.id,
        {"notes": "rush"},
        [LineItem("Gear", 3, Decimal("7.50")), LineItem("Vase", 1, Decimal("100"))],
    )

    assert edited.total == Decimal("122.50")
    assert edited.profit == Decimal("140.00")
    assert edited.notes == "rush"
    assert [i.product_name for i in edited.items] == ["Gear", "Vase"]


@pytest.mark.asyncio
async def test_edit_keeps_catalog_cost_of_existing_products(manager):
    order = await manager.create_order(TENANT, _draft(items=[LineItem("Vase", 2, Decimal("100"), product_id=1)]))
    assert order.items[0].unit_cost == Decimal("30.00")

    edited = await manager.edit_order(
        TENANT,
        order.id,
        {},
        [LineItem("Vase", 3, Decimal("100"), product_id=1), LineItem("Spool holder", 1, Decimal("12"), product_id=2)],
    )

    assert [i.unit_cost for i in edited.items] == [Decimal("30.00"), Decimal("0.00")]
    assert edited.total == Decimal("312.00")
    assert edited.profit == Decimal("140.00")


@pytest.mark.asyncio
async def test_edit_rejects_status_and_unknown_fields(manager):
    order = await manager.create_order(TENANT, _draft())
    with pytest.raises(PrintHubValidationError):
        await manager.edit_order(TENANT, order.id, {"status": "completed"})
    with pytest.raises(PrintHubValidationError):
        await manager.edit_order(TENANT, order.id, {"client_name": "  "})


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["origin", "payment_method", "deposit", "files"])
async def test_edit_rejects_clearing_required_fields(manager, field):
    order = await manager.create_order(TENANT, _draft(notes="keep"))
    order_id = order.id
    with pytest.raises(PrintHubValidationError) as exc:
        await manager.edit_order(TENANT, order_id, {field: None, "notes": "changed"})
    assert exc.value.code == "FIELD_REQUIRED"
    assert exc.value.extra == {"fields": [field]}

    stored = await manager.get_order(TENANT, order_id)
    assert stored.notes == "keep"


# ---------------------------------------------------------------------------
# read side
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_list_orders_filters_and_paginates(manager):
    for name in ("A", "B", "C"):
        await manager.create_order(TENANT, _draft(client_name=name))
    c = (await manager.list_orders(TENANT))[0][0]
    await manager.cancel_order(TENANT, c.id)

    rows, total = await manager.list_orders(TENANT, limit=2)
    assert total == 3 and len(rows) == 2

    pending, total_pending = await manager.list_orders(TENANT, status="pending")
    assert total_pending == 2
    assert {o.client_name for o in pending} == {"A", "B"}

    with pytest.raises(PrintHubValidationError):
        await manager.list_orders(TENANT, status="bogus")


@pytest.mark.asyncio
async def test_timeline_lists_reached_events(manager, make_printer):
    printer = await make_printer()
    order = await manager.create_order(TENANT, _draft())
    await manager.transition_status(TENANT, order.id, "in_progress", printer_id=printer.id, print_time_minutes=20)

    timeline = await manager.timeline(TENANT, order.id)
    assert [e["event"] for e in timeline["events"]] == ["created", "started"]
    assert timeline["finished_at"] is None


@pytest.mark.asyncio
async def test_resend_tracking(manager, dispatcher):
    without = await manager.create_order(TENANT, _draft())
    with pytest.raises(PrintHubValidationError):
        await manager.resend_tracking(TENANT, without.id)

    order = await manager.create_order(TENANT, _draft(customer_contact="5551234"))
    assert await manager.resend_tracking(TENANT, order.id) is True
    assert "tracking code again" in dispatcher.calls[-1]["message"]
