# printhub/models/base.py
"""
Declarative base with naming conventions plus the small helpers every model shares.

Time is stored as naive UTC (DateTime without timezone=True) across all tables.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Naive UTC "now"."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(v: Any) -> Decimal:
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def money(v: Any) -> Decimal:
    return to_decimal(v).quantize(Decimal("0.01"))


# Shared constraint/index names for alembic autogenerate.
NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix__%(table_name)s__%(column_0_N_name)s",
    "uq": "uq__%(table_name)s__%(column_0_N_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_N_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}


class Base(DeclarativeBase):
    """Root declarative base (SQLAlchemy 2.x) with naming conventions."""

    metadata = MetaData(naming_convention=NAMING_CONVENTIONS)

    def __repr__(self) -> str:  # pragma: no cover
        cols = []
        for k in self.__mapper__.c.keys():
            v = getattr(self, k, None)
            if isinstance(v, str) and len(v) > 64:
                v = v[:64] + "…"
            cols.append(f"{k}={v!r}")
        return f"<{self.__class__.__name__}({', '.join(cols)})>"


def enum_values(enum_cls) -> list[str]:
    """values_callable for SQLEnum: persist the lowercase values, not member names."""
    return [m.value for m in enum_cls]
