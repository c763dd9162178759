# printhub/core/metrics.py
"""
Prometheus metrics for PrintHub.

One private CollectorRegistry per process, exposed at /metrics:
- HTTP request count/latency (recorded by LoggingContextMiddleware)
- order intake and status transitions
- printer allocation conflicts
- notification outcomes per dispatcher mode
- registered sales
"""

from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

REGISTRY = CollectorRegistry()

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
    registry=REGISTRY,
)
HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency (seconds)",
    ["method", "path"],
    registry=REGISTRY,
)

ORDERS_CREATED = Counter("printhub_orders_created_total", "Orders created", registry=REGISTRY)
ORDER_TRANSITIONS = Counter(
    "printhub_order_transitions_total",
    "Order status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)
PRINTER_CONFLICTS = Counter(
    "printhub_printer_allocation_conflicts_total",
    "Start attempts rejected because the printer was not idle",
    registry=REGISTRY,
)
NOTIFICATIONS = Counter(
    "printhub_notifications_total",
    "Notification attempts by kind, dispatcher mode and outcome",
    ["kind", "mode", "outcome"],
    registry=REGISTRY,
)
SALES_REGISTERED = Counter("printhub_sales_registered_total", "Deliveries reconciled into sales", registry=REGISTRY)

_ID_SEGMENT = re.compile(r"/\d+(?=/|$)")
_PUBLIC_CODE = re.compile(r"^(.*/public/track)/[^/]+")


def path_label(path: str) -> str:
    """Collapse numeric ids and tracking codes so label cardinality stays bounded."""
    path = _ID_SEGMENT.sub("/{id}", path or "")
    return _PUBLIC_CODE.sub(r"\1/{code}", path)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "REGISTRY",
    "HTTP_REQUESTS",
    "HTTP_LATENCY",
    "ORDERS_CREATED",
    "ORDER_TRANSITIONS",
    "PRINTER_CONFLICTS",
    "NOTIFICATIONS",
    "SALES_REGISTERED",
    "path_label",
    "render_latest",
]
