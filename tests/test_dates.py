from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from wastetrack.dates import add_months, month_bounds, month_key, month_range, parse_appointment, parse_month
from wastetrack.errors import BadRequestError

JAKARTA = ZoneInfo("Asia/Jakarta")


def test_parse_month():
    assert parse_month("2024-02", "start_month") == date(2024, 2, 1)
    with pytest.raises(BadRequestError) as exc_info:
        parse_month("02-2024", "start_month")
    assert exc_info.value.detail == "Invalid start_month format, expected YYYY-MM"


def test_month_arithmetic_crosses_years():
    assert add_months(date(2023, 11, 1), 3) == date(2024, 2, 1)
    assert month_range(date(2023, 12, 1), date(2024, 2, 1)) == [
        date(2023, 12, 1),
        date(2024, 1, 1),
        date(2024, 2, 1),
    ]


def test_month_bounds_are_local_months_in_utc():
    lower, upper = month_bounds(date(2024, 1, 1), date(2024, 1, 1), JAKARTA)

    assert lower == datetime(2023, 12, 31, 17, 0)
    assert upper == datetime(2024, 1, 31, 16, 59, 59, 999999)


def test_month_key_uses_local_calendar():
    # 20:00 UTC on the last day of January is already February in Jakarta
    assert month_key(datetime(2024, 1, 31, 20, 0), JAKARTA) == "2024-02"
    assert month_key(datetime(2024, 1, 31, 16, 0), JAKARTA) == "2024-01"


def test_appointment_is_normalised():
    now = datetime(2024, 5, 1, 8, 0, tzinfo=JAKARTA)

    result = parse_appointment("2024-05-02", "09:00:00+0700", "10:30:00+07:00", JAKARTA, now=now)

    assert result == ("2024-05-02", "09:00:00+07:00", "10:30:00+07:00")


def test_appointment_without_date_is_empty():
    assert parse_appointment(None, None, None, JAKARTA) == (None, None, None)
    with pytest.raises(BadRequestError):
        parse_appointment(None, "09:00:00+07:00", None, JAKARTA)


@pytest.mark.parametrize(
    "day, start, end",
    [
        ("2024-04-30", None, None),
        ("01-05-2024", None, None),
        ("2024-05-01", "07:00:00+07:00", None),
        ("2024-05-02", "10:00:00+07:00", "09:00:00+07:00"),
        ("2024-05-02", "10:00:00+07:00", "10:00:00+07:00"),
        ("2024-05-02", "10:00", None),
    ],
)
def test_invalid_appointments(day, start, end):
    now = datetime(2024, 5, 1, 8, 0, tzinfo=JAKARTA)

    with pytest.raises(BadRequestError):
        parse_appointment(day, start, end, JAKARTA, now=now)


def test_start_time_compares_across_offsets():
    now = datetime(2024, 5, 1, 8, 0, tzinfo=JAKARTA)

    # 02:30 UTC is 09:30 in Jakarta, still ahead of now
    day, start, _ = parse_appointment("2024-05-01", "02:30:00+00:00", None, JAKARTA, now=now)

    assert start == "02:30:00+00:00"
    assert day == "2024-05-01"
