# printhub/models/__init__.py
"""ORM models. Importing this package registers every table on Base.metadata."""

from printhub.models.base import Base, money, to_decimal, utc_now
from printhub.models.client import Client
from printhub.models.order import (
    ALLOWED_TRANSITIONS,
    STATUS_PROGRESSION,
    TERMINAL_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    compute_total,
)
from printhub.models.printer import Printer, PrinterStatus
from printhub.models.product import Product
from printhub.models.sale import SERVICE_SALE_CATEGORY, Sale
from printhub.models.tenant_settings import TenantSettings

__all__ = [
    "Base",
    "money",
    "to_decimal",
    "utc_now",
    "Client",
    "Order",
    "OrderItem",
    "OrderStatus",
    "ALLOWED_TRANSITIONS",
    "STATUS_PROGRESSION",
    "TERMINAL_STATUSES",
    "compute_total",
    "Printer",
    "PrinterStatus",
    "Product",
    "Sale",
    "SERVICE_SALE_CATEGORY",
    "TenantSettings",
]
