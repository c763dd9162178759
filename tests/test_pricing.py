from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from printhub.core.exceptions import NotFoundError, UpstreamUnavailableError
from printhub.models import Order, Product, compute_total
from printhub.services.lifecycle import OrderDraft, OrderLifecycleManager
from printhub.services.pricing import LineItem, SqlCatalog, enrich_items
from tests.conftest import OTHER_TENANT, TENANT, FakeCatalog


def test_compute_total_ignores_item_order():
    items = [
        LineItem("Vase", 2, Decimal("100")),
        LineItem("Keychain", 5, Decimal("3.25")),
        LineItem("Gear", 1, Decimal("0.99")),
    ]
    assert compute_total(items) == Decimal("217.24")
    assert compute_total(list(reversed(items))) == compute_total(items)


@pytest.mark.asyncio
async def test_enrich_uses_catalog_cost_for_catalog_items():
    catalog = FakeCatalog(costs={1: Decimal("30.00")})
    result = await enrich_items(TENANT, [LineItem("Vase", 2, Decimal("100"), product_id=1)], catalog)

    assert result.total == Decimal("200.00")
    assert result.estimated_cost == Decimal("60.00")
    assert result.estimated_profit == Decimal("140.00")
    assert result.items[0].unit_cost == Decimal("30.00")
    assert catalog.lookups == [(TENANT, 1)]


@pytest.mark.asyncio
async def test_custom_items_use_their_own_cost_and_skip_the_catalog():
    catalog = FakeCatalog()
    items = [
        LineItem("Cosplay helmet", 1, Decimal("250"), is_custom=True, unit_cost=Decimal("80")),
        LineItem("Custom sign", 1, Decimal("40"), product_id=99, is_custom=True),
    ]
    result = await enrich_items(TENANT, items, catalog)

    assert result.estimated_cost == Decimal("80.00")
    assert result.estimated_profit == Decimal("210.00")
    assert catalog.lookups == []


@pytest.mark.asyncio
async def test_catalog_miss_and_outage_count_as_zero_cost():
    catalog = FakeCatalog(costs={1: Decimal("10")}, failing={3})
    items = [
        LineItem("Known", 1, Decimal("50"), product_id=1),
        LineItem("Deleted product", 1, Decimal("20"), product_id=2),
        LineItem("Catalog down", 1, Decimal("30"), product_id=3),
        LineItem("Loose item", 1, Decimal("5")),
    ]
    result = await enrich_items(TENANT, items, catalog)

    assert [i.unit_cost for i in result.items] == [Decimal("10.00"), Decimal("0.00"), Decimal("0.00"), Decimal("0.00")]
    assert result.total == Decimal("105.00")
    assert result.estimated_profit == Decimal("95.00")


@pytest.mark.asyncio
async def test_sql_catalog_reads_tenant_product_cost(session):
    session.add_all(
        [
            Product(tenant_id=TENANT, name="Vase", price=Decimal("100"), unit_cost=Decimal("30")),
            Product(tenant_id=OTHER_TENANT, name="Vase", price=Decimal("100"), unit_cost=Decimal("12")),
        ]
    )
    await session.commit()
    catalog = SqlCatalog(session)

    assert await catalog.get_unit_cost(TENANT, 1) == Decimal("30.00")
    with pytest.raises(NotFoundError):
        await catalog.get_unit_cost(TENANT, 2)


@pytest.mark.asyncio
async def test_failed_catalog_query_does_not_break_order_creation(session, session_factory, dispatcher, monkeypatch):
    real_execute = session.execute

    async def execute(statement, *args, **kwargs):
        if "products" in str(statement):
            raise OperationalError("SELECT products.unit_cost", {}, Exception("canceling statement due to statement timeout"))
        return await real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(session, "execute", execute)
    catalog = SqlCatalog(session)
    with pytest.raises(UpstreamUnavailableError):
        await catalog.get_unit_cost(TENANT, 1)
    assert not session.in_nested_transaction()

    manager = OrderLifecycleManager(session, notifier=dispatcher, session_factory=session_factory, catalog=catalog)
    order = await manager.create_order(
        TENANT, OrderDraft(client_name="Ana", items=[LineItem("Vase", 2, Decimal("100"), product_id=1)])
    )
    order_id = order.id

    async with session_factory() as s:
        stored = await s.get(Order, order_id)
        assert stored is not None
        assert stored.total == Decimal("200.00")
        assert stored.profit == Decimal("200.00")
