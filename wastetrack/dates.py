"""Date and time helpers shared by the request lifecycle and the dashboard.

Stored timestamps are naive UTC, which is what pymongo hands back by default.
Calendar concepts (appointment days, dashboard months) are interpreted in the
configured application timezone, which callers pass in explicitly.
"""
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple

from .errors import BadRequestError

DATE_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"
TIME_FORMAT = "%H:%M:%S%z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_month(value: str, field: str) -> date:
    try:
        return datetime.strptime(value, MONTH_FORMAT).date()
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid {field} format, expected YYYY-MM")


def add_months(month: date, count: int) -> date:
    index = month.year * 12 + (month.month - 1) + count
    return date(index // 12, index % 12 + 1, 1)


def month_range(start: date, end: date) -> List[date]:
    """First day of every month from ``start`` to ``end`` inclusive."""
    months = []
    current = date(start.year, start.month, 1)
    while current <= end:
        months.append(current)
        current = add_months(current, 1)
    return months


def month_bounds(start: date, end: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """UTC window covering the start of ``start``'s month up to the end of ``end``'s month."""
    lower = datetime(start.year, start.month, 1, tzinfo=tz)
    next_month = add_months(end, 1)
    upper = datetime(next_month.year, next_month.month, 1, tzinfo=tz) - timedelta(microseconds=1)
    return to_utc_naive(lower), to_utc_naive(upper)


def month_key(value: datetime, tz: tzinfo) -> str:
    """Calendar month (in ``tz``) of a naive UTC timestamp."""
    return value.replace(tzinfo=timezone.utc).astimezone(tz).strftime(MONTH_FORMAT)


def _combine(day: str, clock: str, field: str) -> datetime:
    try:
        return datetime.strptime(f"{day} {clock}", f"{DATE_FORMAT} {TIME_FORMAT}")
    except ValueError:
        raise BadRequestError(f"Invalid {field} format, expected HH:MM:SS+hh:mm")


def _format_clock(value: datetime) -> str:
    return value.isoformat(timespec="seconds")[11:]


def parse_appointment(
    day: Optional[str],
    start: Optional[str],
    end: Optional[str],
    tz: tzinfo,
    now: Optional[datetime] = None,
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Validate an appointment window and return it normalised.

    The date must be ``YYYY-MM-DD`` and not before today in ``tz``; times carry
    their own UTC offset, must not be in the past and the end must come after
    the start.
    """
    if not day:
        if start or end:
            raise BadRequestError("appointment_date is required when appointment times are given")
        return None, None, None

    try:
        appointment_day = datetime.strptime(day, DATE_FORMAT).date()
    except ValueError:
        raise BadRequestError("Invalid appointment_date format, expected YYYY-MM-DD")

    now = now or datetime.now(tz)
    if appointment_day < now.astimezone(tz).date():
        raise BadRequestError("appointment_date cannot be in the past")

    start_at = _combine(day, start, "appointment_start_time") if start else None
    end_at = _combine(day, end, "appointment_end_time") if end else None

    if start_at and start_at < now:
        raise BadRequestError("appointment_start_time cannot be in the past")
    if start_at and end_at and end_at <= start_at:
        raise BadRequestError("appointment_end_time must be after appointment_start_time")

    return (
        day,
        _format_clock(start_at) if start_at else None,
        _format_clock(end_at) if end_at else None,
    )
