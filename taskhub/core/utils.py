# File: taskhub/core/utils.py
"""
Date/time helpers shared by the task engine.

All persisted timestamps are naive datetimes in UTC. Values arriving with an
offset are converted to UTC and stripped of tzinfo at the boundary.
"""

from datetime import datetime, timezone
from typing import Callable, Optional, Union

from dateutil import parser as date_parser
from dateutil import tz

from taskhub.core.exceptions import ValidationException

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Union[str, datetime], field: str = "date") -> datetime:
    """
    Parse an ISO 8601 date or datetime string into a naive UTC datetime.

    Args:
        value: ISO string (``2024-01-08``, ``2024-01-08T09:00:00.000Z``) or datetime
        field: Field name reported in validation errors

    Raises:
        ValidationException: If the value is not a valid ISO 8601 string
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError, AttributeError) as e:
        raise ValidationException(
            f"Invalid ISO 8601 date: {value!r}", {field: [str(e)]}
        ) from e
    return to_naive_utc(parsed)


def format_iso(value: datetime) -> str:
    """Render a naive UTC datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


def format_in_timezone(value: datetime, timezone_name: Optional[str], fmt: str) -> str:
    """Format a naive UTC datetime in the given IANA timezone, falling back to UTC."""
    zone = tz.gettz(timezone_name) if timezone_name else None
    aware = value.replace(tzinfo=timezone.utc)
    return aware.astimezone(zone or timezone.utc).strftime(fmt)
