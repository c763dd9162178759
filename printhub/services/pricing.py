# printhub/services/pricing.py
"""
Item cost enrichment and order totals.

Read-only: the catalog is only queried, never written. A product that cannot be
resolved (missing, other tenant, lookup failure) contributes zero cost instead of
failing the whole order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from printhub.core.exceptions import NotFoundError, UpstreamUnavailableError
from printhub.core.logging import get_logger
from printhub.models import Product, money, to_decimal

logger = get_logger(__name__)


@dataclass
class LineItem:
    product_name: str
    quantity: int
    unit_price: Decimal
    product_id: Optional[int] = None
    is_custom: bool = False
    unit_cost: Optional[Decimal] = None  # only honoured for custom items

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.unit_price) * int(self.quantity)


@dataclass
class PricedItem:
    product_name: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    product_id: Optional[int] = None
    is_custom: bool = False


@dataclass
class EnrichmentResult:
    items: list[PricedItem] = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    estimated_cost: Decimal = Decimal("0.00")
    estimated_profit: Decimal = Decimal("0.00")


class CatalogLookup(Protocol):
    async def get_unit_cost(self, tenant_id: str, product_id: int) -> Decimal:
        """Raise NotFoundError when the product is not in the tenant's catalog."""
        ...


class SqlCatalog:
    """Catalog lookup backed by the products table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_unit_cost(self, tenant_id: str, product_id: int) -> Decimal:
        # savepoint: a failed lookup must not abort the transaction the order is written in
        try:
            async with self.session.begin_nested():
                row = (
                    await self.session.execute(
                        select(Product.unit_cost).where(Product.id == product_id, Product.tenant_id == tenant_id)
                    )
                ).first()
        except SQLAlchemyError as e:
            raise UpstreamUnavailableError(f"Catalog lookup failed for product {product_id}") from e
        if row is None:
            raise NotFoundError(f"Product {product_id} not found", extra={"product_id": product_id})
        return to_decimal(row[0])


async def _resolve_unit_cost(tenant_id: str, item: LineItem, catalog: CatalogLookup) -> Decimal:
    if item.is_custom:
        return to_decimal(item.unit_cost)
    if item.product_id is None:
        return Decimal("0")
    try:
        return await catalog.get_unit_cost(tenant_id, item.product_id)
    except (NotFoundError, UpstreamUnavailableError) as e:
        logger.warning(
            "catalog_cost_defaulted",
            tenant=tenant_id,
            product_id=item.product_id,
            reason=type(e).__name__,
            detail=str(e),
        )
        return Decimal("0")


async def enrich_items(tenant_id: str, items: Sequence[LineItem], catalog: CatalogLookup) -> EnrichmentResult:
    """Price every line and compute total, estimated cost and estimated profit."""
    result = EnrichmentResult()
    total = Decimal("0")
    cost = Decimal("0")
    for item in items:
        unit_cost = await _resolve_unit_cost(tenant_id, item, catalog)
        result.items.append(
            PricedItem(
                product_name=item.product_name,
                quantity=int(item.quantity),
                unit_price=money(item.unit_price),
                unit_cost=money(unit_cost),
                product_id=item.product_id,
                is_custom=bool(item.is_custom),
            )
        )
        total += item.line_total
        cost += unit_cost * int(item.quantity)

    result.total = money(total)
    result.estimated_cost = money(cost)
    result.estimated_profit = result.total - result.estimated_cost
    return result


__all__ = ["LineItem", "PricedItem", "EnrichmentResult", "CatalogLookup", "SqlCatalog", "enrich_items"]
