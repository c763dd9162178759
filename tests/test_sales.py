from decimal import Decimal

import pytest
from sqlalchemy import func, select

from printhub.core.exceptions import AlreadyRegisteredError, InvalidTransitionError, NotFoundError
from printhub.models import SERVICE_SALE_CATEGORY, OrderStatus, PrinterStatus, Sale
from printhub.services.lifecycle import OrderDraft
from printhub.services.notifications import NotificationKind
from printhub.services.pricing import LineItem
from printhub.services.printers import PrinterRegistry
from printhub.services.sales import SaleReconciler, parse_final_cost
from tests.conftest import OTHER_TENANT, TENANT


@pytest.fixture
def reconciler(session, session_factory, dispatcher):
    return SaleReconciler(session, notifier=dispatcher, session_factory=session_factory)


async def _sale_count(session) -> int:
    return (await session.execute(select(func.count(Sale.id)))).scalar_one()


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, "0.00"),
        ("", "0.00"),
        ("   ", "0.00"),
        ("abc", "0.00"),
        (float("nan"), "0.00"),
        ("NaN", "0.00"),
        ("12.5", "12.50"),
        (40, "40.00"),
        (Decimal("3.333"), "3.33"),
    ],
)
def test_parse_final_cost(raw, expected):
    assert parse_final_cost(raw) == Decimal(expected)


@pytest.mark.asyncio
async def test_register_delivery_creates_one_sale(reconciler, make_order, session):
    order = await make_order(status=OrderStatus.COMPLETED, total=Decimal("150.00"))

    sale, delivered = await reconciler.register_delivery(TENANT, order.id, "40")

    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.delivered_at is not None
    assert delivered.is_sale_registered is True
    assert delivered.profit == Decimal("110.00")

    assert sale.order_id == order.id
    assert sale.quantity == 1
    assert sale.price == Decimal("150.00")
    assert sale.cost == Decimal("40.00")
    assert sale.profit == Decimal("110.00")
    assert sale.category == SERVICE_SALE_CATEGORY
    assert order.tracking_code in sale.label and "Ana" in sale.label
    assert await _sale_count(session) == 1


@pytest.mark.asyncio
async def test_second_registration_is_rejected(reconciler, make_order, session):
    order = await make_order(status=OrderStatus.COMPLETED)
    await reconciler.register_delivery(TENANT, order.id, 10)

    with pytest.raises(AlreadyRegisteredError):
        await reconciler.register_delivery(TENANT, order.id, 10)
    assert await _sale_count(session) == 1


@pytest.mark.asyncio
async def test_stale_reconciler_cannot_register_twice(session_factory, dispatcher, make_order):
    """A reconciler that read the order before the first registration still loses the claim."""
    order = await make_order(status=OrderStatus.COMPLETED)

    async with session_factory() as s_a, session_factory() as s_b:
        rec_a = SaleReconciler(s_a, notifier=dispatcher, session_factory=session_factory)
        rec_b = SaleReconciler(s_b, notifier=dispatcher, session_factory=session_factory)
        await rec_b.orders.get_order(TENANT, order.id)

        await rec_a.register_delivery(TENANT, order.id, None)

        # rec_b re-reads inside register_delivery and sees the flag
        with pytest.raises(AlreadyRegisteredError):
            await rec_b.register_delivery(TENANT, order.id, None)

    async with session_factory() as s:
        assert await _sale_count(s) == 1


@pytest.mark.asyncio
async def test_missing_cost_counts_as_zero(reconciler, make_order):
    order = await make_order(status=OrderStatus.COMPLETED, total=Decimal("80.00"))
    sale, delivered = await reconciler.register_delivery(TENANT, order.id, "n/a")

    assert sale.cost == Decimal("0.00")
    assert sale.profit == Decimal("80.00")
    assert delivered.profit == Decimal("80.00")


@pytest.mark.asyncio
async def test_delivery_allowed_from_pending(reconciler, make_order):
    order = await make_order(status=OrderStatus.PENDING)
    _, delivered = await reconciler.register_delivery(TENANT, order.id)
    assert delivered.status == OrderStatus.DELIVERED


@pytest.mark.asyncio
async def test_cancelled_order_cannot_be_delivered(reconciler, make_order, session):
    order = await make_order(status=OrderStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError):
        await reconciler.register_delivery(TENANT, order.id)
    assert await _sale_count(session) == 0


@pytest.mark.asyncio
async def test_unknown_or_foreign_order(reconciler, make_order):
    foreign = await make_order(tenant_id=OTHER_TENANT)
    with pytest.raises(NotFoundError):
        await reconciler.register_delivery(TENANT, 9999)
    with pytest.raises(NotFoundError):
        await reconciler.register_delivery(TENANT, foreign.id)


@pytest.mark.asyncio
async def test_delivery_releases_a_printer_still_held(reconciler, make_printer, session):
    printer = await make_printer()
    oid = (await reconciler.orders.create_order(TENANT, OrderDraft("Ana", [LineItem("Vase", 1, Decimal("60"))]))).id
    await reconciler.orders.transition_status(
        TENANT, oid, "in_progress", printer_id=printer.id, print_time_minutes=30
    )

    await reconciler.register_delivery(TENANT, oid, 0)

    freed = await PrinterRegistry(session).get(TENANT, printer.id)
    assert freed.status == PrinterStatus.IDLE
    assert freed.current_order_id is None


@pytest.mark.asyncio
async def test_delivery_notifies_customer(reconciler, make_order, dispatcher):
    order = await make_order(status=OrderStatus.COMPLETED, customer_contact="5551234")
    await reconciler.register_delivery(TENANT, order.id, 5)

    [msg] = dispatcher.of_kind(NotificationKind.CUSTOMER)
    assert "delivered" in msg["message"]
    assert msg["phone"] == "5551234"


@pytest.mark.asyncio
async def test_list_sales_newest_first(reconciler, make_order):
    first = await make_order(status=OrderStatus.COMPLETED)
    second = await make_order(status=OrderStatus.COMPLETED, client_name="Bruno")
    await reconciler.register_delivery(TENANT, first.id)
    await reconciler.register_delivery(TENANT, second.id)

    sales = await reconciler.list_sales(TENANT)
    assert [s.order_id for s in sales] == [second.id, first.id]
    assert await reconciler.list_sales(OTHER_TENANT) == []
