from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Device-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Wire timestamp -> UTC-naive datetime.

    Missing or blank values give None. A trailing 'Z' or a numeric offset is
    folded into UTC; a value without one is already UTC.
    Raises ValueError for anything fromisoformat() rejects.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    UTC-naive (or aware) datetime -> "YYYY-MM-DDTHH:MM:SS.ffffffZ".

    Microseconds are kept so updatedAt ordering survives a round trip.
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return f"{dt.isoformat(timespec='microseconds')}Z"
