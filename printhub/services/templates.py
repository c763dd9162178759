# printhub/services/templates.py
"""
Customer message templates.

Placeholders are substituted literally ({clientName}, {trackingCode}, {status},
{trackingUrl}, {businessName}); anything else in braces is left as written.
Plain text only, no escaping.
"""

from __future__ import annotations

import re
from typing import Mapping, Optional

RESEND_TRACKING_KEY = "resend_tracking"
FALLBACK_STATUS_KEY = "pending"

DEFAULT_TEMPLATES: dict[str, str] = {
    "pending": "Hi {clientName}! Your order {trackingCode} is queued for production. Follow it at {trackingUrl}",
    "in_progress": "Hi {clientName}! Your order {trackingCode} is now being printed. Follow it at {trackingUrl}",
    "completed": "Good news {clientName}! Your order {trackingCode} is ready for pickup/delivery. Details at {trackingUrl}",
    "delivered": (
        "Thanks for choosing {businessName}, {clientName}! Order {trackingCode} is delivered. "
        "Rate your experience at {trackingUrl}"
    ),
    "cancelled": "Hi {clientName}, your order {trackingCode} was cancelled. Message us if you want to resume it.",
    RESEND_TRACKING_KEY: "Hi {clientName}! Here is your tracking code again: {trackingCode}. Check your order at {trackingUrl}",
}

TEMPLATE_KEYS = frozenset(DEFAULT_TEMPLATES)
KNOWN_PLACEHOLDERS = frozenset({"clientName", "trackingCode", "status", "trackingUrl", "businessName"})

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def build_tracking_url(base_url: str, tracking_code: str) -> str:
    base = (base_url or "").rstrip("/")
    return f"{base}?code={tracking_code}"


def render_template(template: str, values: Mapping[str, object]) -> str:
    def _sub(m: re.Match[str]) -> str:
        key = m.group(1)
        if key in KNOWN_PLACEHOLDERS and key in values:
            return str(values[key])
        return m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


def resolve_template(overrides: Optional[Mapping[str, str]], key: str) -> str:
    """
    Tenant override → built-in default for the key → the pending template
    for status keys that have no template of their own.
    """
    overrides = overrides or {}
    if key not in TEMPLATE_KEYS:
        key = FALLBACK_STATUS_KEY
    custom = overrides.get(key)
    if isinstance(custom, str) and custom.strip():
        return custom
    return DEFAULT_TEMPLATES[key]


__all__ = [
    "DEFAULT_TEMPLATES",
    "TEMPLATE_KEYS",
    "RESEND_TRACKING_KEY",
    "build_tracking_url",
    "render_template",
    "resolve_template",
]
