from __future__ import annotations

from datetime import datetime
from typing import Any

from retailhub.time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""
    status_code = 400


def field(payload: dict, *names: str, default: Any = None) -> Any:
    """
    Read the first present key among `names`.

    API clients send camelCase (licenseKey) while CLI/tests often use
    snake_case (license_key); both spellings are accepted.
    """
    for name in names:
        if name in payload:
            return payload[name]
    return default


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(value: Any, name: str, *, minimum: int | None = None, allow_none: bool = False) -> int | None:
    """Strict integer coercion: rejects floats, bools and scientific notation."""
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return result


def coerce_bool(value: Any, name: str, *, default: bool | None = None) -> bool | None:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
    raise ValidationError(f"{name} must be a boolean")


def coerce_str(value: Any, name: str, *, max_length: int | None = None, allow_none: bool = True) -> str | None:
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    stripped = value.strip()
    if not stripped:
        if allow_none:
            return None
        raise ValidationError(f"{name} cannot be blank")
    if max_length and len(stripped) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return stripped


def coerce_datetime(value: Any, name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
    raise ValidationError(f"{name} must be an ISO-8601 datetime")


def coerce_price_cents(value: Any, name: str, *, allow_none: bool = False) -> int | None:
    price = coerce_int(value, name, minimum=0, allow_none=allow_none)
    if price is not None and price > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return price


def coerce_string_list(value: Any, name: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"{name} must be a list of strings")
    return [item.strip() for item in value if item.strip()]
