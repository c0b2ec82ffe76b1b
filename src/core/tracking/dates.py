"""
Calendar-day keys for records written in different timestamp formats.

Records reach us with dates in whatever shape the writer used: store
timestamps, epoch milliseconds, ISO strings, plain dates. Everything is
converted here, at the boundary, into one canonical value (a naive
datetime in local time) and from there into a `YYYY-MM-DD` day key.

Day keys use the local calendar day, never UTC. A bare date string such as
"2024-03-15" is built as local noon so it cannot slide into the previous
day in zones west of UTC.
"""

import logging
import math
import re
from datetime import date, datetime, time
from typing import Any, Mapping, Optional, Union

from .models import StoreTimestamp

logger = logging.getLogger(__name__)

DateInput = Union[StoreTimestamp, Mapping[str, Any], int, float, str, date, datetime]

_DATE_ONLY = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def to_local_datetime(value: Any) -> Optional[datetime]:
    """
    Convert any supported date representation to a naive local datetime.

    Returns None when the value can't be interpreted. Callers that need a
    total function should use `to_day_key`.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, StoreTimestamp):
        return _safe(value.to_datetime)

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime.combine(value, time(12, 0))

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return _safe(lambda: datetime.fromtimestamp(value / 1000))

    if isinstance(value, str):
        return _parse_string(value)

    if isinstance(value, Mapping):
        try:
            timestamp = StoreTimestamp.from_mapping(value)
        except (TypeError, ValueError):
            return None
        return _safe(timestamp.to_datetime)

    # Objects exposing their own conversion, e.g. SDK timestamp wrappers
    converter = getattr(value, "to_datetime", None)
    if callable(converter):
        return to_local_datetime(_safe(converter))

    return None


def to_day_key(value: Any, now: Optional[datetime] = None) -> str:
    """
    Local calendar-day key for a date value.

    Total: unparsable input falls back to `now` (the current time when not
    given) instead of raising.
    """
    moment = to_local_datetime(value)
    if moment is None:
        logger.debug(
            "Unparsable date, using current day",
            extra={"value": repr(value)[:64]}
        )
        moment = now or datetime.now()
    return format_day_key(moment)


def format_day_key(value: Union[date, datetime]) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_day_key(day_key: str) -> date:
    """Inverse of `format_day_key`. Raises ValueError for anything else."""
    match = _DATE_ONLY.match(day_key.strip())
    if not match:
        raise ValueError(f"Invalid day key: {day_key!r}")
    year, month, day = (int(part) for part in match.groups())
    return date(year, month, day)


def start_of_day(value: Optional[datetime] = None) -> datetime:
    """Local midnight of the given (default: current) day."""
    value = value or datetime.now()
    return datetime.combine(value.date(), time.min)


def start_of_day_millis(value: Optional[datetime] = None) -> int:
    return int(start_of_day(value).timestamp() * 1000)


def _parse_string(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None

    match = _DATE_ONLY.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day, 12, 0)
        except ValueError:
            return None

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_local_datetime(parsed)


def _safe(func) -> Optional[datetime]:
    # fromtimestamp raises for values outside the platform's range
    try:
        return func()
    except (OverflowError, OSError, ValueError):
        return None
