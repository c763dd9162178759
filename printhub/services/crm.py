# printhub/services/crm.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.logging import get_logger
from printhub.models import Client, money

logger = get_logger(__name__)


async def _increment(session: AsyncSession, tenant_id: str, name: str, amount: Decimal, when: datetime) -> bool:
    result = await session.execute(
        update(Client)
        .where(Client.tenant_id == tenant_id, Client.name == name)
        .values(
            total_spent=Client.total_spent + amount,
            order_count=Client.order_count + 1,
            last_order_date=when,
            updated_at=when,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def record_client_order(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    client_name: str,
    amount: Decimal,
    when: datetime,
    source: Optional[str] = None,
) -> None:
    """
    Bump the client's running totals for a newly created order.

    Atomic increment first; insert when the client is new. Losing the insert race
    to a concurrent creation falls back to the increment.
    """
    amount = money(amount)
    async with session_factory() as session:
        if await _increment(session, tenant_id, client_name, amount, when):
            await session.commit()
            return

        session.add(
            Client(
                tenant_id=tenant_id,
                name=client_name,
                source=source,
                total_spent=amount,
                order_count=1,
                last_order_date=when,
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if not await _increment(session, tenant_id, client_name, amount, when):
                raise
            await session.commit()
    logger.info("crm_client_created", tenant=tenant_id, client=client_name)


async def list_clients(session: AsyncSession, tenant_id: str, limit: int = 100) -> list[Client]:
    stmt = (
        select(Client)
        .where(Client.tenant_id == tenant_id)
        .order_by(Client.total_spent.desc(), Client.name)
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


__all__ = ["record_client_order", "list_clients"]
