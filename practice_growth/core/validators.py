"""Explicit input validators.

Services call these at the top of each operation, before any read or
write that could have a side effect. Every helper raises
``ValidationError`` and returns the (possibly normalized) value.
"""

import re
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import Any

from practice_growth.core.exceptions import ValidationError

SEND_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce a numeric input to Decimal."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")


def require_positive(value: Any, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return amount


def require_non_negative(value: Any, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def require_positive_int(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def require_non_negative_int(value: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} cannot be negative")
    return value


def require_range(value: Any, field: str, minimum: Any = None, maximum: Any = None) -> Any:
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return value


def require_text(value: str | None, field: str, max_length: int | None = None) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(cleaned) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return cleaned


def require_choice(value: str, field: str, choices) -> str:
    allowed = {c.value if hasattr(c, "value") else c for c in choices}
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    return value


def parse_send_time(value: str | None) -> time | None:
    """Parse an ``HH:MM`` time-of-day string."""
    if value is None or value == "":
        return None
    match = SEND_TIME_PATTERN.match(value.strip())
    if not match:
        raise ValidationError("send_time must use 24-hour HH:MM format")
    return time(int(match.group(1)), int(match.group(2)))


def require_rating(rating: int | None) -> int | None:
    if rating is None:
        return None
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")
    return rating


def require_date_window(start, end, start_field: str = "start_date", end_field: str = "end_date") -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError(f"{end_field} cannot be before {start_field}")
