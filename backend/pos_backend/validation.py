from __future__ import annotations
from datetime import datetime
from pos_backend.time_utils import parse_iso_datetime
from pos_backend.models.inventory import MANUAL_MOVEMENT_TYPES
from pos_backend.models.sales import PAYMENT_METHODS

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Upper bound on a single cart
MAX_CART_LINES = 200



class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    discount_cents: int = 0


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings; rejects bools, floats, decimals
    and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
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

        patch[k] = val

    return patch


def _check_cents(key: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("selling_price_cents", "cost_price_cents"):
        if patch.get(key) is not None:
            _check_cents(key, patch[key])

    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")

    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        raise ValidationError("stock_quantity must be >= 0")


def _optional_text(payload: dict, key: str, max_length: int | None = None) -> str | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    value = raw.strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def validate_checkout(cart: list[CartLine], payment_method: str, amount_tendered_cents: int) -> None:
    """
    Preconditions of a sale, checked before any database work.
    """
    if not cart:
        raise ValidationError("items must contain at least one line")
    if len(cart) > MAX_CART_LINES:
        raise ValidationError(f"items cannot exceed {MAX_CART_LINES} lines")

    for i, line in enumerate(cart):
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity < 1:
            raise ValidationError(f"items[{i}].quantity must be an integer >= 1")
        if not isinstance(line.discount_cents, int) or isinstance(line.discount_cents, bool):
            raise ValidationError(f"items[{i}].discount_cents must be an integer")
        _check_cents(f"items[{i}].discount_cents", line.discount_cents)

    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    if not isinstance(amount_tendered_cents, int) or isinstance(amount_tendered_cents, bool):
        raise ValidationError("amount_tendered_cents must be an integer")
    _check_cents("amount_tendered_cents", amount_tendered_cents)


SALE_FIELDS = {"items", "payment_method", "amount_tendered_cents", "customer_name", "notes"}
CART_LINE_FIELDS = {"product_id", "quantity", "discount_cents"}


def parse_sale_payload(payload: dict) -> dict:
    """
    Turn a POST /sales body into keyword arguments for sales_service.create_sale.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - SALE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    missing = sorted(f for f in ("items", "payment_method", "amount_tendered_cents") if f not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    raw_items = payload["items"]
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    cart: list[CartLine] = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        extra = sorted(set(raw) - CART_LINE_FIELDS)
        if extra:
            raise ValidationError(f"items[{i}]: field not allowed: {extra[0]}")
        if "product_id" not in raw or "quantity" not in raw:
            raise ValidationError(f"items[{i}] requires product_id and quantity")
        discount = raw.get("discount_cents")
        cart.append(CartLine(
            product_id=coerce_int(f"items[{i}].product_id", raw["product_id"]),
            quantity=coerce_int(f"items[{i}].quantity", raw["quantity"]),
            discount_cents=0 if discount is None else coerce_int(f"items[{i}].discount_cents", discount),
        ))

    payment_method = payload["payment_method"]
    if not isinstance(payment_method, str):
        raise ValidationError("payment_method must be a string")

    kwargs = {
        "cart": cart,
        "payment_method": payment_method.strip().lower(),
        "amount_tendered_cents": coerce_int("amount_tendered_cents", payload["amount_tendered_cents"]),
        "customer_name": _optional_text(payload, "customer_name", max_length=255),
        "notes": _optional_text(payload, "notes"),
    }
    validate_checkout(kwargs["cart"], kwargs["payment_method"], kwargs["amount_tendered_cents"])
    return kwargs


def validate_void_reason(reason: Any) -> str:
    if reason is None or not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason required")
    return reason.strip()


def parse_void_payload(payload: dict) -> str:
    """Body of POST /sales/<id>/void: {"reason": "..."}"""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - {"reason"})
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    return validate_void_reason(payload.get("reason"))


def parse_stock_adjustment_payload(payload: dict) -> dict:
    """
    Body of POST /products/<id>/restock:
    {"type": "restock|adjustment|damage|return", "quantity": <non-zero int>, "reason": "..."}
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - {"type", "quantity", "reason"})
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    movement_type = payload.get("type")
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}")

    if "quantity" not in payload:
        raise ValidationError("Missing required fields: quantity")
    quantity = coerce_int("quantity", payload["quantity"])
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")

    return {
        "movement_type": movement_type,
        "quantity_change": quantity,
        "reason": _optional_text(payload, "reason"),
    }


def parse_date_arg(key: str, raw: str | None) -> datetime | None:
    """Query-string datetime (ISO-8601 or YYYY-MM-DD)."""
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
