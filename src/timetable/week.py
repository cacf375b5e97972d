"""Week arithmetic for the Monday-start weekly grid.

Pure functions only: no I/O, no clock reads except where ``now`` is passed
in explicitly.
"""

from datetime import date, datetime, timedelta

DAYS_PER_WEEK = 7
MINUTES_PER_HOUR = 60


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def week_start(anchor: date | datetime) -> date:
    """Monday of the week containing ``anchor``.

    A Sunday anchor belongs to the week that started six days earlier.
    """
    day = _as_date(anchor)
    return day - timedelta(days=day.weekday())


def week_window(anchor: date | datetime) -> list[date]:
    """Monday..Sunday of the week containing ``anchor``."""
    monday = week_start(anchor)
    return [monday + timedelta(days=i) for i in range(DAYS_PER_WEEK)]


def shift_week(anchor: date | datetime, weeks: int) -> date:
    """Same weekday ``weeks`` weeks later (negative for earlier)."""
    return _as_date(anchor) + timedelta(days=DAYS_PER_WEEK * weeks)


def is_same_calendar_day(a: date | datetime, b: date | datetime) -> bool:
    """Compare year, month and day only."""
    a, b = _as_date(a), _as_date(b)
    return (a.year, a.month, a.day) == (b.year, b.month, b.day)


def time_to_offset_pixels(
    hour: int, minute: int, day_start_hour: int, px_per_hour: float
) -> float:
    """Vertical offset of hour:minute in a grid starting at ``day_start_hour``.

    May be negative for times before the grid start; callers clip.
    """
    return ((hour - day_start_hour) + minute / MINUTES_PER_HOUR) * px_per_hour


def hour_rows(start_hour: int, end_hour: int) -> list[int]:
    """Hour labels of the grid rows, e.g. 8..17 for an 8-18 grid."""
    return list(range(start_hour, end_hour))


def format_day_label(day: date) -> str:
    """Short weekday name, e.g. 'Mon'."""
    return day.strftime("%a")


def format_date_label(day: date) -> str:
    """Short month and day without padding, e.g. 'Oct 5'."""
    return f"{day.strftime('%b')} {day.day}"


def format_time(hour: int, minute: int = 0) -> str:
    """12-hour clock label, e.g. '9:05 AM', '12:00 PM'."""
    suffix = "PM" if hour % 24 >= 12 else "AM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {suffix}"
