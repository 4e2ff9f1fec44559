from __future__ import annotations
from datetime import datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import end_of_day, normalize_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

# Per-line unit cap; keeps quantity * price inside a 64-bit INTEGER column
MAX_QUANTITY = 1_000_000

MAX_LINE_ITEMS = 500


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: allowed values for enum-like string columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, set[str]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return normalize_datetime(value)
        if isinstance(value, str):
            try:
                dt = normalize_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    - enum choices
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
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
    choices = policy.choices or {}

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in choices and val not in choices[k]:
            raise ValidationError(f"{k} must be one of: {', '.join(sorted(choices[k]))}")

        patch[k] = val

    return patch


def split_items(payload: dict | None) -> tuple[dict, list | None]:
    """
    Separate the `items` list from the header fields of a document payload.

    Returns (header, items); items is None when the key is absent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    header = dict(payload)
    items = header.pop("items", None)
    if "items" in payload:
        if not isinstance(items, list):
            raise ValidationError("items must be a list")
        if len(items) > MAX_LINE_ITEMS:
            raise ValidationError(f"items cannot exceed {MAX_LINE_ITEMS} lines")
    return header, items


def enforce_amount(patch: dict, field: str, *, positive: bool = False) -> None:
    """Range checks for *_cents money fields."""
    if field not in patch or patch[field] is None:
        return
    amount = patch[field]
    if positive and amount <= 0:
        raise ValidationError(f"{field} must be > 0")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_quantity(patch: dict, field: str = "quantity") -> None:
    if field not in patch:
        return
    if patch[field] is None or patch[field] <= 0:
        raise ValidationError(f"{field} must be > 0")
    if patch[field] > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")


def enforce_line_total(quantity: int, unit_price_cents: int | None) -> None:
    """Reject lines whose extended amount is larger than any single amount may be."""
    if unit_price_cents is None:
        return
    if quantity * unit_price_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"line total cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    enforce_amount(patch, "price_cents")
    enforce_amount(patch, "cost_cents")
    if "barcode" in patch and patch["barcode"] == "":
        # Blank barcodes are stored as NULL so the unique index stays sparse
        patch["barcode"] = None


def json_object(payload) -> dict:
    """Request bodies for action endpoints: absent means {}, anything but an object is a 400."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_bool_field(data: dict, field: str, *, default: bool) -> bool:
    # Same strictness as Boolean columns: "false" or 0 are not booleans
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", {"field": field})
    return value


def parse_date_param(value: str | None, *, field: str, end: bool = False):
    """
    Parse a query-string date for range filters.

    end=True turns a bare date into an inclusive end-of-day bound.
    """
    if value is None or not value.strip():
        return None
    try:
        return end_of_day(value) if end else normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", {"field": field})


def parse_int_param(value: str | None, *, field: str) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{field} must be an integer", {"field": field})
