# Overview: Request validation; payload cleaning against model columns, field checks and API error types.

from __future__ import annotations
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String

from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Basis points: 10000 = 100%
MAX_RATE_BPS = 10_000

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]{7,}$")
COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class ValidationError(ValueError):
    """
    400-level input problem.

    `errors` optionally carries per-field messages:
    [{"field": "contact_email", "message": "Invalid email"}]
    """

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.errors:
            body["errors"] = self.errors
        return body


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate slug or SKU)."""


class NotFoundError(LookupError):
    """404-level: row missing inside the caller's tenant."""


class FieldErrors:
    """
    Collects per-field problems so a form payload reports all of them at once.

        errors = FieldErrors()
        errors.require(data, "name")
        errors.raise_if_any()
    """

    def __init__(self):
        self.items: list[dict] = []

    def add(self, field: str, message: str) -> None:
        self.items.append({"field": field, "message": message})

    def require(self, data: dict, field: str, label: str | None = None) -> bool:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            self.add(field, f"{label or field} is required")
            return False
        return True

    def __bool__(self) -> bool:
        return bool(self.items)

    def raise_if_any(self, message: str = "Validation failed") -> None:
        if self.items:
            raise ValidationError(
                self.items[0]["message"] if len(self.items) == 1 else message,
                errors=list(self.items),
            )


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a route may write.

    writable_fields is the client allowlist; tenant_id, counters and
    timestamps are never in it. required_on_create applies to create
    (partial=False) payloads only.
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()


_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})
_WHOLE_NUMBER_RE = re.compile(r"^-?\d+$")


def _to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError("must be a boolean")


def _to_int(value):
    """Cents, basis points and counters: 12.5, "1e3" and True are all rejected."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _WHOLE_NUMBER_RE.match(value.strip()):
        return int(value.strip())
    raise ValueError("must be a whole number")


def _to_float(value):
    if isinstance(value, bool):
        raise ValueError("must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValueError("must be a number") from None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    raise ValueError("must be a number")


def _to_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValueError("must be an ISO-8601 datetime")


def _to_json(value):
    if isinstance(value, (dict, list)):
        return value
    raise ValueError("must be an object or list")


def _to_text(value):
    if isinstance(value, (dict, list)):
        raise ValueError("must be a string")
    return str(value).strip()


# Column type -> coercer, first match wins
_COERCERS = (
    (Boolean, _to_bool),
    (Integer, _to_int),
    (Float, _to_float),
    (DateTime, _to_datetime),
    (JSON, _to_json),
    (String, _to_text),
)


def _clean_value(column, raw):
    if raw is None:
        if not column.nullable:
            raise ValueError("cannot be null")
        return None

    value = raw
    for column_type, coerce in _COERCERS:
        if isinstance(column.type, column_type):
            value = coerce(raw)
            break

    if isinstance(column.type, String) and isinstance(value, str):
        if value == "":
            if not column.nullable:
                raise ValueError("cannot be blank")
            # Empty optional text is stored as NULL
            return None
        if column.type.length and len(value) > column.type.length:
            raise ValueError(f"exceeds max length {column.type.length}")
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a JSON body against the model's columns and the route's policy.

    Returns a patch with only writable fields, coerced to their column
    types. Every problem found (protected or unknown field, missing
    required value, wrong type, value too long) is raised together in one
    ValidationError with a per-field entry each.

    partial=False: create semantics, required_on_create enforced
    partial=True: patch semantics, only the keys present are checked
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}
    errors = FieldErrors()
    if not partial:
        for name in sorted(policy.required_on_create or ()):
            errors.require(payload, name)
    reported = {item["field"] for item in errors.items}

    patch: dict = {}
    for key, raw in payload.items():
        if key in reported:
            continue
        if key not in policy.writable_fields:
            errors.add(key, f"Field not allowed: {key}")
            continue
        if key not in columns:
            errors.add(key, f"Unknown field: {key}")
            continue
        try:
            patch[key] = _clean_value(columns[key], raw)
        except ValueError as exc:
            errors.add(key, f"{key} {exc}")

    errors.raise_if_any("Invalid fields")
    return patch


# -- Field validators --

def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))


def is_valid_phone(value: str | None) -> bool:
    return bool(value) and bool(PHONE_RE.match(value.strip()))


def is_valid_color(value: str | None) -> bool:
    return bool(value) and bool(COLOR_RE.match(value.strip()))


def is_valid_url(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def enforce_price_cents(patch: dict, *fields: str) -> None:
    """Range-check money fields present in a patch (0..MAX_PRICE_CENTS)."""
    for field in fields:
        if field not in patch or patch[field] is None:
            continue
        price = patch[field]
        if not isinstance(price, int) or isinstance(price, bool):
            raise ValidationError(f"{field} must be an integer")
        if price < 0:
            raise ValidationError(f"{field} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_non_negative(patch: dict, *fields: str) -> None:
    for field in fields:
        value = patch.get(field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} must be >= 0")


def require_string_list(value: Any, field: str, *, urls: bool = False) -> list[str]:
    """Normalize a JSON list of strings (tags, image URLs); blanks and duplicates are dropped."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(f"{field} must contain only strings")
        item = item.strip()
        if not item or item in out:
            continue
        if urls and not is_valid_url(item):
            raise ValidationError(f"{field} contains an invalid URL: {item}")
        out.append(item)
    return out
