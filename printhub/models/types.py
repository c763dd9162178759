# printhub/models/types.py
from __future__ import annotations

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, TypeDecorator


class JSONBCompat(TypeDecorator):
    """
    Cross-database "JSONB":
    - PostgreSQL → real JSONB
    - everything else (SQLite in dev/tests) → plain JSON

    Usage:
        files = Column(JSONBCompat, nullable=False, default=list)
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


__all__ = ["JSONBCompat"]
