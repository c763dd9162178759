# printhub/services/tracking_codes.py
"""Public tracking codes: `<PREFIX>-<4 time chars><5 random chars>`, uppercase base36."""

from __future__ import annotations

import re
import secrets
import string
import time
from typing import Optional

_ALPHABET = string.digits + string.ascii_uppercase
TIME_PART_LENGTH = 4
RANDOM_PART_LENGTH = 5


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("base36 of a negative number")
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_ALPHABET[r])
    return "".join(reversed(out))


def generate_tracking_code(prefix: str = "PH", now_ms: Optional[int] = None) -> str:
    """Time part trends chronologically; the random part separates same-millisecond calls."""
    ms = int(time.time() * 1000) if now_ms is None else now_ms
    time_part = to_base36(ms)[-TIME_PART_LENGTH:].rjust(TIME_PART_LENGTH, "0")
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(RANDOM_PART_LENGTH))
    return f"{prefix.upper()}-{time_part}{random_part}"


def tracking_code_pattern(prefix: str = "PH") -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix.upper())}-[0-9A-Z]{{{TIME_PART_LENGTH + RANDOM_PART_LENGTH}}}$")


def normalize_tracking_code(code: str) -> str:
    return (code or "").strip().upper()


__all__ = ["generate_tracking_code", "tracking_code_pattern", "normalize_tracking_code", "to_base36"]
