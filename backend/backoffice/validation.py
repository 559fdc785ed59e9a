from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 in cents. Guards against overflow and typos.
MAX_AMOUNT_CENTS = 999_999_999


def _as_int(name: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{name} must be an integer")


def require_id(name: str, value: Any) -> int:
    """Required positive integer identifier."""
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    result = _as_int(name, value)
    if result <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return result


def optional_id(name: str, value: Any) -> int | None:
    if value is None or value == "":
        return None
    return require_id(name, value)


def require_positive_int(name: str, value: Any) -> int:
    if value is None:
        raise ValidationError(f"{name} is required")
    result = _as_int(name, value)
    if result <= 0:
        raise ValidationError(f"{name} must be greater than 0")
    return result


def require_non_negative_cents(name: str, value: Any) -> int:
    if value is None:
        raise ValidationError(f"{name} is required")
    result = _as_int(name, value)
    if result < 0:
        raise ValidationError(f"{name} cannot be negative")
    if result > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} exceeds the maximum allowed amount")
    return result


def require_positive_cents(name: str, value: Any) -> int:
    result = require_non_negative_cents(name, value)
    if result == 0:
        raise ValidationError(f"{name} must be greater than 0")
    return result


def parse_payment_method(value: Any, allowed: set[str]) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("payment_method is required")
    method = value.strip().upper()
    if method not in allowed:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(sorted(allowed))}"
        )
    return method


def parse_optional_datetime(name: str, value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def optional_text(value: Any, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]
