from __future__ import annotations
from datetime import datetime
from catalog.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.stock import BATCH_STATUSES, QUALITY_STATUSES


# Upper bound for any single tier price; keeps Numeric(12, 2) from overflowing
MAX_PRICE = 9_999_999_999.99


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate batch number)."""


class NotFoundError(LookupError):
    """404-level: a record the operation requires does not exist."""


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


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Money and other decimals
    if isinstance(coltype, Numeric):
        return coerce_number(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
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


def coerce_number(value: Any, field: str) -> float:
    """Accept ints, floats and numeric strings; reject bools, blanks, NaN and infinities."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a finite number")
    return number


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


BATCH_QUANTITY_FIELDS = (
    "original_quantity",
    "current_quantity",
    "reserved_quantity",
    "good_quantity",
    "refurbished_quantity",
    "damaged_quantity",
    "online_stock",
    "offline_stock",
)


def enforce_rules_stock_batch(patch: dict) -> None:
    """
    Business rules for stock batch writes that SQLAlchemy metadata cannot express.
    """
    for field in BATCH_QUANTITY_FIELDS:
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")

    if "status" in patch and patch["status"] not in BATCH_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(BATCH_STATUSES)}")

    if "quality_status" in patch and patch["quality_status"] not in QUALITY_STATUSES:
        raise ValidationError(f"quality_status must be one of: {', '.join(QUALITY_STATUSES)}")

    if patch.get("unit_cost") is not None and patch["unit_cost"] < 0:
        raise ValidationError("unit_cost must be >= 0")

    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"].upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter code")
        patch["currency"] = currency


def validate_warehouse_quantities(values: dict) -> list[str]:
    """
    Check manually entered warehouse figures.

    Returns every violated rule rather than stopping at the first, so the
    caller can show them all at once. The arrival breakdown is deliberately
    not checked here; validate_stock_consistency reports it after the fact.
    """
    errors = []
    labels = {
        "stock_on_arrival": "Stock On Arrival",
        "damaged_qty": "Damaged Qty",
        "expired_qty": "Expired Qty",
        "refurbished_qty": "Refurbished Qty",
        "final_stock": "Final Stock",
        "online_stock": "Online Stock",
        "offline_stock": "Offline Stock",
    }
    for field, label in labels.items():
        if (values.get(field) or 0) < 0:
            errors.append(f"{label} cannot be negative")

    final_stock = values.get("final_stock") or 0
    online = values.get("online_stock") or 0
    offline = values.get("offline_stock") or 0
    if online + offline > final_stock:
        errors.append(
            f"Online Stock ({online}) + Offline Stock ({offline}) = {online + offline} "
            f"exceeds Final Stock ({final_stock})"
        )
    return errors


def enforce_rules_price(value: Any, field: str = "price") -> float:
    price = coerce_number(value, field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE:,.2f}")
    return round(price, 2)
