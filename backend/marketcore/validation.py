from __future__ import annotations
from datetime import datetime
from marketcore.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


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
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Coordinates, ratings, speeds
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

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

    if isinstance(coltype, Date):
        try:
            d = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        if d is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")
        return d

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # products_supplied, photos, coordinates ...
    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list or an object")
        return value

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

        # Money columns are integer cents
        if k.endswith("_cents"):
            require_amount(k, val)

        patch[k] = val

    return patch


def require_choice(field: str, value, choices) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of {sorted(choices)}", details={field: value})
    return value


def require_amount(field: str, value, *, allow_zero: bool = True) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def require_quantity(field: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def require_rating(field: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
        raise ValidationError(f"{field} must be an integer from 1 to 5")
    return value


def enforce_rules_order(
    items: list,
    subtotal_cents: int,
    delivery_fee_cents: int,
    total_cents: int,
    *,
    allow_empty: bool = False,
) -> None:
    """Order boundary rules: non-empty, positive quantities, total = subtotal + delivery fee.

    Package deliveries carry no catalog items, so they pass allow_empty=True.
    """
    if not items and not allow_empty:
        raise ValidationError("Order must contain at least one item")
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required")
        require_quantity(f"items[{i}].quantity", item.get("quantity"))
        require_amount(f"items[{i}].price_cents", item.get("price_cents"))

    require_amount("subtotal_cents", subtotal_cents)
    require_amount("delivery_fee_cents", delivery_fee_cents)
    require_amount("total_cents", total_cents)
    if total_cents != subtotal_cents + delivery_fee_cents:
        raise ValidationError(
            "total_cents must equal subtotal_cents + delivery_fee_cents",
            details={
                "subtotal_cents": subtotal_cents,
                "delivery_fee_cents": delivery_fee_cents,
                "total_cents": total_cents,
            },
        )


def enforce_rules_sale(items: list, subtotal_cents: int, discount_cents: int, total_cents: int) -> None:
    """Sales arrive fully priced; only shape and sign are checked here."""
    if not items:
        raise ValidationError("Sale must contain at least one item")
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"items[{i}].product_id is required")
        require_quantity(f"items[{i}].quantity", item.get("quantity"))
        require_amount(f"items[{i}].price_cents", item.get("price_cents"))
        require_amount(f"items[{i}].discount_cents", item.get("discount_cents", 0))

    require_amount("subtotal_cents", subtotal_cents)
    require_amount("discount_cents", discount_cents)
    require_amount("total_cents", total_cents)


def enforce_rules_inventory_product(patch: dict) -> None:
    for field in ("cost_price_cents", "selling_price_cents"):
        if field in patch and patch[field] is not None:
            require_amount(field, patch[field])
    if "low_stock_threshold" in patch and patch["low_stock_threshold"] is not None:
        if patch["low_stock_threshold"] < 0:
            raise ValidationError("low_stock_threshold must be >= 0")


def enforce_rules_coordinates(latitude: float, longitude: float) -> None:
    for field, value in (("latitude", latitude), ("longitude", longitude)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError("latitude must be between -90 and 90")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError("longitude must be between -180 and 180")
