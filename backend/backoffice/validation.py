from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.inventory import ITEM_PRODUCT, ITEM_RAW_MATERIAL
from .models.tenancy import LOCATION_VAN, LOCATION_WAREHOUSE
from .time_utils import parse_iso_datetime

# Maximum single amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
# Maximum single quantity on one line
MAX_QUANTITY = 10_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer: ints and plain digit strings only (no bools, floats, 1e3, 12.5)."""
    if isinstance(value, int) and not isinstance(value, bool):
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


def require_positive_int(name: str, value: Any, *, maximum: int = MAX_QUANTITY) -> int:
    number = coerce_int(name, value)
    if number <= 0:
        raise ValidationError(f"{name} must be > 0")
    if number > maximum:
        raise ValidationError(f"{name} cannot exceed {maximum}")
    return number


def require_non_negative_int(name: str, value: Any, *, maximum: int = MAX_AMOUNT_CENTS) -> int:
    number = coerce_int(name, value)
    if number < 0:
        raise ValidationError(f"{name} must be >= 0")
    if number > maximum:
        raise ValidationError(f"{name} cannot exceed {maximum}")
    return number


def require_lines(lines: Any, *, name: str = "lines") -> list[dict]:
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError(f"{name} must be a non-empty list")
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError(f"each entry in {name} must be an object")
    return list(lines)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}
    for k, raw in payload.items():
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


ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"kind", "sku", "name", "price_cents", "standard_cost_cents", "is_active"},
    required_on_create={"sku", "name"},
)

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "kind", "driver_id", "max_cash_cents", "is_active"},
    required_on_create={"name"},
)

EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "role", "is_active"},
    required_on_create={"name"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "is_active"},
    required_on_create={"name"},
)


def enforce_rules_item(patch: dict) -> None:
    if "kind" in patch and patch["kind"] not in (ITEM_PRODUCT, ITEM_RAW_MATERIAL):
        raise ValidationError(f"kind must be {ITEM_PRODUCT} or {ITEM_RAW_MATERIAL}")
    for field in ("price_cents", "standard_cost_cents"):
        if patch.get(field) is not None:
            require_non_negative_int(field, patch[field])


def enforce_rules_location(patch: dict) -> None:
    if "kind" in patch and patch["kind"] not in (LOCATION_WAREHOUSE, LOCATION_VAN):
        raise ValidationError(f"kind must be {LOCATION_WAREHOUSE} or {LOCATION_VAN}")
    if patch.get("max_cash_cents") is not None:
        require_non_negative_int("max_cash_cents", patch["max_cash_cents"])
