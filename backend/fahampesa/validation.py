from __future__ import annotations
from datetime import datetime

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import coerce_datetime, parse_iso_datetime


# Maximum unit cost: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, name: str) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.

    Floats, bools, decimals and scientific notation are rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def require_positive_int(value: Any, name: str) -> int:
    if value is None:
        raise ValidationError(f"{name} is required")
    number = coerce_int(value, name)
    if number <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return number


def require_non_negative_int(value: Any, name: str) -> int:
    if value is None:
        raise ValidationError(f"{name} is required")
    number = coerce_int(value, name)
    if number < 0:
        raise ValidationError(f"{name} must be >= 0")
    return number


def optional_non_negative_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    return require_non_negative_int(value, name)


def require_text(value: Any, name: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{name} is required")
    return text


def require_choice(value: Any, name: str, choices) -> str:
    if value is None:
        raise ValidationError(f"{name} is required")
    choice = str(value).strip().upper()
    if choice not in choices:
        raise ValidationError(f"Invalid {name}: {value}. Must be one of {', '.join(sorted(choices))}")
    return choice


def coerce_flag(value: Any, name: str, *, default: Optional[bool]) -> Optional[bool]:
    """
    Strict boolean coercion for request flags.

    Accepts JSON booleans and the strings "true"/"false" (any case).
    Anything else, including 0/1 and "yes", is rejected.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ValidationError(f"{name} must be a boolean")


def require_datetime(value: Any, name: str) -> datetime:
    if isinstance(value, datetime):
        return coerce_datetime(value, name)
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    try:
        dt = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")
    if dt is None:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")
    return dt


def require_item_list(items: Any, name: str = "items") -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError(f"At least one item is required in {name}")
    for entry in items:
        if not isinstance(entry, dict):
            raise ValidationError(f"Each entry in {name} must be an object")
    return items


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        return require_datetime(value, col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Keys in the payload that are not writable are ignored rather than
    rejected, since every request also carries the tenant user_id.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    if "cost_price_cents" in patch and patch["cost_price_cents"] is not None:
        cost = patch["cost_price_cents"]
        if cost < 0:
            raise ValidationError("cost_price_cents must be >= 0")
        if cost > MAX_PRICE_CENTS:
            raise ValidationError(f"cost_price_cents cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_unit_cost(value: Any, name: str = "unit_cost_cents", *, required: bool) -> Optional[int]:
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    cost = coerce_int(value, name)
    if required and cost <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    if cost < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cost > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")
    return cost
