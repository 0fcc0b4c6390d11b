from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest money value accepted from clients: 9,999,999.99
MAX_PRICE_CENTS = 999_999_999
MAX_BATCH_QUANTITY = 1_000_000
# Matches the precision of Transaction.tax_rate_percent
TAX_RATE_STEP = Decimal("0.001")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def coerce_int(name: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals
    and scientific notation ("1e3") rather than silently truncating.
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


def parse_id(name: str, value: Any) -> int:
    parsed = coerce_int(name, value)
    if parsed <= 0:
        raise ValidationError(f"{name} must be a positive id")
    return parsed


def parse_quantity(name: str, value: Any) -> int:
    qty = coerce_int(name, value)
    if qty <= 0:
        raise ValidationError(f"{name} must be > 0")
    if qty > MAX_BATCH_QUANTITY:
        raise ValidationError(f"{name} cannot exceed {MAX_BATCH_QUANTITY}")
    return qty


def parse_cents(name: str, value: Any, *, allow_none: bool = False) -> int | None:
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required")
    cents = coerce_int(name, value)
    if cents < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def parse_tax_rate_percent(value: Any) -> Decimal:
    """Tax rate in percent, 0..100 inclusive. Accepts numbers or numeric strings."""
    if value is None or isinstance(value, bool):
        raise ValidationError("tax_rate_percent must be a number")
    try:
        rate = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("tax_rate_percent must be a number")
    if not rate.is_finite():
        raise ValidationError("tax_rate_percent must be a number")
    if rate < 0 or rate > 100:
        raise ValidationError("tax_rate_percent must be between 0 and 100")
    if rate != rate.quantize(TAX_RATE_STEP):
        raise ValidationError("tax_rate_percent allows at most 3 decimal places")
    return rate


def parse_payment_method(value: Any, allowed) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("payment_method must be a non-empty string")
    method = value.strip().lower()
    if method not in allowed:
        raise ValidationError(f"payment_method must be one of: {', '.join(allowed)}")
    return method


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool = False,
) -> dict:
    """
    Validate and normalize incoming JSON against the model's columns and the
    policy allowlist. Returns a patch containing only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            continue
        col = cols[key]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        if isinstance(col.type, Integer):
            value = coerce_int(key, raw)
        elif isinstance(col.type, (String, Text)):
            value = str(raw).strip()
            if not value and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            if isinstance(col.type, String) and col.type.length and len(value) > col.type.length:
                raise ValidationError(f"{key} exceeds max length {col.type.length}")
        else:
            value = raw

        patch[key] = value

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Money fields on a product must be within range."""
    for key in ("price_cents", "cost_cents"):
        if patch.get(key) is not None:
            parse_cents(key, patch[key])
