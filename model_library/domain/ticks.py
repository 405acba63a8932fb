"""
Timestamp helpers.

Catalog timestamps are stored as ticks: 100-nanosecond intervals since
0001-01-01T00:00:00 UTC, the representation existing catalogs were written in.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

TICKS_PER_MICROSECOND = 10
_EPOCH = datetime(1, 1, 1, tzinfo=timezone.utc)


def datetime_to_ticks(value: datetime) -> int:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta // timedelta(microseconds=1)) * TICKS_PER_MICROSECOND


def ticks_to_datetime(ticks: int) -> datetime:
    return _EPOCH + timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)


def now_ticks() -> int:
    return datetime_to_ticks(datetime.now(timezone.utc))


def parse_iso_to_ticks(text: str) -> Optional[int]:
    """
    Convert an ISO-8601 timestamp string into ticks.

    Returns None when the text is not a valid timestamp.
    """
    try:
        value = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return datetime_to_ticks(value)
