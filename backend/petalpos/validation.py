# Overview: Input validation for JSON bodies; column metadata plus catalog rules.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from .time_utils import parse_iso_datetime


# 9,999,999.99 in cents
MAX_PRICE_CENTS = 999_999_999

PRODUCT_TYPES = {"standard", "flower", "composite"}

_MISSING = object()


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which model fields a client may write, and which a create must carry."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass but never a valid count or amount
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        digits = value.strip()
        if digits.lstrip("-").isdigit():
            return int(digits)
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be a boolean")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _coerce_text(col, value: Any) -> str:
    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    limit = getattr(col.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{col.key} exceeds max length {limit}")
    return text


def _clean_value(col, value: Any):
    if value is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None
    if isinstance(col.type, Boolean):
        return _coerce_bool(col.key, value)
    if isinstance(col.type, Integer):
        return _coerce_int(col.key, value)
    if isinstance(col.type, DateTime):
        return _coerce_datetime(col.key, value)
    if isinstance(col.type, (String, Text)):
        return _coerce_text(col, value)
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a JSON body against the model's columns and a write policy.

    partial=False enforces required_on_create; keys outside the policy are
    rejected rather than ignored.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")
        patch[key] = _clean_value(columns[key], raw)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """Catalog rules the column types cannot express."""
    for key in ("price_cents", "cost_cents"):
        value = patch.get(key)
        if value is not None and not 0 <= value <= MAX_PRICE_CENTS:
            raise ValidationError(f"{key} must be between 0 and {MAX_PRICE_CENTS}")

    if "units_per_package" in patch and (patch["units_per_package"] or 0) < 1:
        raise ValidationError("units_per_package must be >= 1")

    for key in ("care_days_water", "care_days_cut"):
        value = patch.get(key)
        if value is not None and value < 1:
            raise ValidationError(f"{key} must be >= 1")

    if "type" in patch and patch["type"] not in PRODUCT_TYPES:
        raise ValidationError(f"type must be one of {', '.join(sorted(PRODUCT_TYPES))}")


def require_int(payload: dict, key: str, *, default=_MISSING) -> int:
    """Integer field from a JSON body; `default` makes it optional."""
    if payload.get(key) is None:
        if default is _MISSING:
            raise ValidationError(f"{key} is required")
        return default
    return _coerce_int(key, payload[key])


def optional_str(payload: dict, key: str, *, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None
