from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC 'now'; every DateTime column in the catalog stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 string from a request body into naive UTC.

    Blank input gives None. Values without an offset (including plain
    "YYYY-MM-DD" expiry dates) are taken to be UTC already; "Z" and
    "+HH:MM" offsets are converted.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: datetime | None) -> str | None:
    """Serialize for JSON as ISO-8601 with a trailing 'Z', to whole seconds."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def days_until(dt: datetime | None, now: datetime | None = None) -> int | None:
    """Whole days from now until dt, rounded up (negative once dt has passed)."""
    if dt is None:
        return None
    remaining = dt - (now or utcnow())
    return math.ceil(remaining.total_seconds() / 86400)
