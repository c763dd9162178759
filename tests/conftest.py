# tests/conftest.py
"""
Pytest configuration and fixtures for async database testing.

- Every test gets its own file-backed SQLite database (aiosqlite, NullPool) under tmp_path,
  so separate sessions really are separate connections.
- Collaborators are plain fakes: a catalog with a fixed cost table, a recording
  messaging channel and a recording notification dispatcher.
- `api_client` is an httpx AsyncClient over ASGITransport with the DB dependencies overridden.
"""

from __future__ import annotations

import os

os.environ["TESTING"] = "1"
os.environ.pop("NOTIFICATIONS_BROKER_URL", None)
os.environ.setdefault("MESSAGING_PROVIDER", "none")

from collections.abc import AsyncIterator
from decimal import Decimal
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from printhub.core.db import build_engine, get_async_db
from printhub.core.dependencies import get_sessionmaker
from printhub.core.exceptions import NotFoundError, UpstreamUnavailableError
from printhub.models import Base, Order, OrderStatus, Printer, PrinterStatus
from printhub.services.lifecycle import OrderLifecycleManager
from printhub.services.notifications import NotificationKind

TENANT = "shop-1"
OTHER_TENANT = "shop-2"
MANAGER_HEADERS = {"X-Tenant-ID": TENANT, "X-User-ID": "7", "X-User-Role": "manager"}


# ======================================================================================
# Fakes
# ======================================================================================
class FakeCatalog:
    """unit costs by product id; ids in `failing` raise UpstreamUnavailableError."""

    def __init__(self, costs: Optional[dict[int, Decimal]] = None, failing: Optional[set[int]] = None):
        self.costs = costs or {}
        self.failing = failing or set()
        self.lookups: list[tuple[str, int]] = []

    async def get_unit_cost(self, tenant_id: str, product_id: int) -> Decimal:
        self.lookups.append((tenant_id, product_id))
        if product_id in self.failing:
            raise UpstreamUnavailableError("catalog down")
        if product_id not in self.costs:
            raise NotFoundError(f"Product {product_id} not found")
        return self.costs[product_id]


class RecordingChannel:
    name = "recording"

    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[tuple[str, str]] = []

    async def send(self, target: str, message: str) -> bool:
        self.sent.append((target, message))
        return self.result


class RecordingDispatcher:
    mode = "recording"

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: list[dict[str, Any]] = []

    async def notify(
        self,
        kind: NotificationKind,
        tenant_id: str,
        message: str,
        phone: Optional[str] = None,
    ) -> bool:
        self.calls.append({"kind": NotificationKind(kind), "tenant_id": tenant_id, "message": message, "phone": phone})
        return self.result

    def of_kind(self, kind: NotificationKind) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["kind"] == kind]


# ======================================================================================
# Database
# ======================================================================================
@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'printhub_test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s


# ======================================================================================
# Collaborators
# ======================================================================================
@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(costs={1: Decimal("30.00"), 2: Decimal("4.50")})


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def manager(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: RecordingDispatcher,
    catalog: FakeCatalog,
) -> OrderLifecycleManager:
    # no DeferredTasks: side effects run inline right after commit
    return OrderLifecycleManager(session, notifier=dispatcher, session_factory=session_factory, catalog=catalog)


@pytest.fixture
def make_printer(session_factory: async_sessionmaker[AsyncSession]):
    async def _make(name: str = "Prusa MK4", tenant_id: str = TENANT, status: PrinterStatus = PrinterStatus.IDLE):
        async with session_factory() as s:
            printer = Printer(tenant_id=tenant_id, name=name, model="mk4", status=status)
            s.add(printer)
            await s.commit()
            return printer

    return _make


@pytest.fixture
def make_order(session_factory: async_sessionmaker[AsyncSession]):
    """Insert an order row directly, bypassing intake side effects."""
    counter = {"n": 0}

    async def _make(
        tenant_id: str = TENANT,
        status: OrderStatus = OrderStatus.PENDING,
        client_name: str = "Ana",
        total: Decimal = Decimal("100.00"),
        **fields: Any,
    ) -> Order:
        counter["n"] += 1
        async with session_factory() as s:
            order = Order(
                tenant_id=tenant_id,
                tracking_code=f"PH-TEST{counter['n']:05d}",
                client_name=client_name,
                status=status,
                total=total,
                profit=total,
                files=[],
                **fields,
            )
            s.add(order)
            await s.commit()
            return order

    return _make


# ======================================================================================
# HTTP
# ======================================================================================
@pytest_asyncio.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: RecordingDispatcher,
) -> AsyncIterator[AsyncClient]:
    from printhub.main import create_app

    app = create_app(dispatcher=dispatcher)

    async def _override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_async_db] = _override_get_db
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        try:
            yield client
        finally:
            app.dependency_overrides.clear()
