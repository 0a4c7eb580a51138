from __future__ import annotations
from datetime import date, datetime
from brfportal.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from email_validator import EmailNotValidError, validate_email
from flask import request
from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest invoice amount accepted: 999 999 999.99 SEK in öre
MAX_AMOUNT_CENTS = 99_999_999_999

SUPPORTED_CURRENCIES = {"SEK", "EUR", "NOK", "DKK", "USD"}


class ValidationError(ValueError):
    """400-level input problem. field names the offending input when known."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., email already registered)."""


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
                raise ValidationError(f"{col.key} must be an integer", col.key)
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", col.key)
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", col.key)
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", col.key)
        raise ValidationError(f"{col.key} must be an integer", col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # DateTime is checked before Date: it is not a Date subclass, but keep the order explicit
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", col.key)

    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)", col.key)
            if d is None:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)", col.key)
            return d
        raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)", col.key)

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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank", k)
            # Optional text fields: blank means "not set"
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def enforce_rules_invoice(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    due_date is advisory and deliberately not compared with invoice_date.
    """
    for field in ("amount_cents", "vat_amount_cents"):
        if field in patch and patch[field] is not None:
            value = patch[field]
            if value < 0:
                raise ValidationError(f"{field} must be >= 0", field)
            if value > MAX_AMOUNT_CENTS:
                raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}", field)

    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"].upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(
                f"currency must be one of: {', '.join(sorted(SUPPORTED_CURRENCIES))}", "currency"
            )
        patch["currency"] = currency


def normalize_email(email: str | None, field: str = "email") -> str:
    """Syntax-check and normalize an email address (no DNS lookups)."""
    if not email or not str(email).strip():
        raise ValidationError("Email is required", field)
    try:
        valid = validate_email(str(email).strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", field)
    return valid.normalized.lower()


def require_text(value: str | None, field: str, label: str | None = None) -> str:
    """Non-blank required text, stripped."""
    text = (value or "").strip() if isinstance(value, str) or value is None else str(value).strip()
    if not text:
        raise ValidationError(f"{label or field} is required", field)
    return text


def optional_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_matching_passwords(password: str | None, confirm_password: str | None) -> None:
    if not password:
        raise ValidationError("Password is required", "password")
    if password != confirm_password:
        raise ValidationError("Passwords do not match", "confirm_password")


def json_payload() -> dict:
    """
    The request's JSON body as a dict. A missing or unparseable body reads
    as empty; any other JSON value (list, string, number) is rejected.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def optional_int(value, field: str) -> int | None:
    """Integer id from JSON or a query string; "3" and 3 both read as 3."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", field)
