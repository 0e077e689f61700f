from __future__ import annotations

import re
from datetime import datetime, time, timezone
from typing import Optional

"""
Time semantics:
- Every stored datetime is UTC-naive.
- API input is ISO-8601; "Z" and offsets are converted to UTC, naive values
  are taken as UTC already.
- A bare date ("2025-06-01") means the start of that day, or the last
  microsecond of it when it closes an inclusive range.
- API output is ISO-8601 with a trailing "Z", whole seconds.
"""

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into a UTC-naive datetime.

    None/blank -> None. Raises ValueError on anything unparseable.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if _DATE_ONLY.match(s):
        day = datetime.fromisoformat(s).date()
        return datetime.combine(day, time.max if end_of_day else time.min)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(s))


def normalize_datetime(value) -> Optional[datetime]:
    """Accept a datetime or an ISO string; return canonical UTC-naive."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc_naive(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError("invalid datetime")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    # naive means UTC
    if dt is None:
        return None
    return as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
