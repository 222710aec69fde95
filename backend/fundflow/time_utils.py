# Overview: UTC clock and ISO-8601 helpers shared by models, services and routes.

"""
All timestamps are stored UTC-naive. Serialized timestamps carry a trailing Z.
Membership join and end dates are plain calendar dates.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """Calendar date used when a membership change names no date."""
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2024-03-01T09:30" is read as UTC; "...Z" and "...+09:00" are converted.
    Blank input gives None. Malformed input raises ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Accept "YYYY-MM-DD" or a full timestamp (its UTC date is used)."""
    if value is None or not value.strip():
        return None
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_iso_datetime(text).date()


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None
