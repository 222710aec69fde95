# Overview: Request payload validation driven by SQLAlchemy column metadata.

"""
Routes hand raw JSON to services; services validate it here.

validate_payload checks a payload against a model's columns and a policy
allowlist, then returns a cleaned patch. Small coercion helpers below serve
routes that read scalar ids, flags and dates from the body or query string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from fundflow.time_utils import parse_iso_date

from .errors import ValidationError


# Largest request amount accepted, in won
MAX_AMOUNT = 99_999_999_999

# Categories the approval matrix knows about (see services/approval_policy.py)
EXPENSE_CATEGORIES = {
    "MINISTRY",
    "SUPPLIES",
    "EQUIPMENT",
    "EVENT",
    "CONSTRUCTION",
    "FACILITIES",
    "SALARY",
    "BONUS",
    "BENEFITS",
    "UTILITIES",
    "MAINTENANCE",
    "OTHER",
}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    writable_fields: the only keys a client may send
    required_on_create: keys that must be present when partial=False
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _coerce_integer(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true must not become 1
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    # "1,200,000" is how amounts are typed in the UI
    digits = value.strip().replace(",", "")
    if "e" in digits.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in digits:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(digits)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    if isinstance(col.type, (Integer, BigInteger)):
        return _coerce_integer(col.key, value)
    if isinstance(col.type, (String, Text)):
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
    Clean a JSON body for a create (partial=False) or a patch (partial=True).

    Rejects keys outside the policy, nulls in non-nullable columns, blank
    required text and strings longer than their column.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}

    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce_value(col, raw)
        if isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(col.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")

        patch[key] = value

    return patch


def enforce_rules_expense_report(patch: dict) -> None:
    """Amount and category rules the column metadata cannot express. Upper-cases category in place."""
    if "amount" in patch and patch["amount"] is not None:
        amount = patch["amount"]
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise ValidationError("amount must be an integer")
        if amount <= 0:
            raise ValidationError("amount must be > 0")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"amount cannot exceed {MAX_AMOUNT:,}")

    if "category" in patch and patch["category"] is not None:
        category = str(patch["category"]).upper()
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(
                f"Invalid category '{patch['category']}'. Must be one of: {', '.join(sorted(EXPENSE_CATEGORIES))}"
            )
        patch["category"] = category


def require_fields(data: dict | None, *names: str) -> dict:
    """Return the JSON body, raising ValidationError when a named field is absent."""
    if data is None or not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return data


def coerce_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def coerce_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be a boolean")
