"""Loose value coercion shared by validation, routing and evaluators."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

NUMERIC_PATTERN = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")


def as_number(value: Any) -> Optional[float]:
    """Return ``value`` as a float when it is, or reads as, a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and NUMERIC_PATTERN.match(value):
        number = float(value)
    else:
        return None
    return number if math.isfinite(number) else None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, Mapping)):
        return len(value) == 0
    return False


def as_date(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 text. Aware values are normalized to naive UTC."""
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
