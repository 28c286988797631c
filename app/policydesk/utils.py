from __future__ import annotations

import re
from datetime import date, datetime, timezone

# fromisoformat before 3.11 only takes 3 or 6 fractional digits; backends trim trailing zeros.
_FRACTION = re.compile(r"\.(\d+)")


def _pad_fraction(m: re.Match) -> str:
    return "." + (m.group(1) + "000000")[:6]


def parse_timestamp(value: str | date | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Naive values are taken to be UTC. A bare date means midnight UTC.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(_FRACTION.sub(_pad_fraction, s, count=1))
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Canonical wire form: ISO-8601 in UTC with an explicit offset."""
    ts = parse_timestamp(value)
    if ts is None:
        raise ValueError("timestamp required")
    return ts.isoformat()


def to_naive_utc(value: str | date | datetime | None) -> datetime | None:
    ts = parse_timestamp(value)
    return ts.replace(tzinfo=None) if ts else None
