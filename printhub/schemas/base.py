"""
Shared schema building blocks: ORM-friendly base model, pages, plain acknowledgements.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Reads ORM objects directly; enums are emitted as their string values."""

    model_config = ConfigDict(from_attributes=True, validate_assignment=True, use_enum_values=True)


class Page(BaseModel, Generic[T]):
    """One page of a tenant-scoped listing, newest first."""

    items: list[T]
    total: int = Field(..., ge=0, description="Rows matching the filters")
    page: int = Field(..., ge=1)
    per_page: int = Field(..., ge=1, le=100)
    pages: int = Field(..., ge=0)
    has_next: bool

    @classmethod
    def build(cls, items: list[T], total: int, *, page: int, per_page: int) -> "Page[T]":
        pages = -(-total // per_page)
        return cls(items=items, total=total, page=page, per_page=per_page, pages=pages, has_next=page < pages)


class Ack(BaseModel):
    message: str
    data: Optional[dict] = None
