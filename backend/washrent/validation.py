from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


"""
Payload coercion for JSON request bodies.

Money is always integer cents: floats, decimals and scientific notation are
rejected rather than rounded.
"""

# $9,999,999.99 in cents; guards against overflow and typos
MAX_AMOUNT_CENTS = 999_999_999


def coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return coerce_int(key, payload[key])


def optional_int(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return coerce_int(key, payload[key])


def require_amount(payload: dict, key: str = "amount_cents", *, allow_zero: bool = False) -> int:
    amount = require_int(payload, key)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'non-negative' if allow_zero else 'positive'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount


def require_str(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{key} is required")
    return str(value).strip()


def optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def optional_datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def amounts_by_channel(payload: dict, key: str = "amounts") -> dict:
    """{"cash": 100, "nequi": "250"} -> {"cash": 100, "nequi": 250}; channels checked by the service."""
    raw = payload.get(key)
    if not isinstance(raw, dict) or not raw:
        raise ValidationError(f"{key} must be an object mapping channel to amount_cents")
    result = {}
    for channel, value in raw.items():
        cents = coerce_int(f"{key}.{channel}", value)
        if cents > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key}.{channel} cannot exceed {MAX_AMOUNT_CENTS}")
        result[channel] = cents
    return result
