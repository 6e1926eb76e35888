# Overview: Shop clock helpers; every stored timestamp is UTC without tzinfo.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read an ISO-8601 string ("Z" suffix and offsets accepted).

    Blank input gives None. Offset-less strings are taken as UTC already.
    Raises ValueError on malformed input.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def coerce_datetime(value, *, field: str = "now") -> datetime:
    """Business-time argument -> UTC-naive datetime; None means the server clock."""
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return _as_naive_utc(value)
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValueError(f"invalid {field}")


def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a trailing "Z" for JSON bodies."""
    if dt is None:
        return None
    stamp = _as_naive_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"
