"""
Work Calendar

Enumerates business days in a range and derives each day's working window
from (work_start_hour, work_end_hour, include_weekends).

The range end is clamped to the end of the current day: gap analysis only
concerns elapsed time, so future days are never enumerated.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Union

from .models import WorkWindow

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def end_of_day(value: DateLike) -> datetime:
    """Last representable instant of the given day"""
    return datetime.combine(_as_date(value), time.max)


def is_weekend(day: date) -> bool:
    """Saturday or Sunday"""
    return day.weekday() >= 5


def validate_work_hours(work_start_hour: int, work_end_hour: int) -> None:
    """
    Validate a working-hours configuration.

    Raises:
        ValueError: If hours are not 0 <= start < end <= 24
    """
    if not (0 <= work_start_hour < work_end_hour <= 24):
        raise ValueError(
            f"Invalid work hours {work_start_hour}-{work_end_hour}: "
            f"expected 0 <= start < end <= 24"
        )


def build_work_window(day: date, work_start_hour: int, work_end_hour: int) -> WorkWindow:
    """
    Create the work window for a single day (e.g., 06:00 - 22:00).

    An end hour of 24 means midnight at the start of the next day.
    """
    midnight = datetime.combine(day, time.min)
    return WorkWindow(
        date=day,
        work_start=midnight + timedelta(hours=work_start_hour),
        work_end=midnight + timedelta(hours=work_end_hour),
    )


def enumerate_work_windows(
    range_start: DateLike,
    range_end: DateLike,
    work_start_hour: int = 6,
    work_end_hour: int = 22,
    include_weekends: bool = False,
    now: Optional[datetime] = None
) -> List[WorkWindow]:
    """
    Enumerate the work windows of every business day in a range.

    Args:
        range_start: First day of the range
        range_end: Last day of the range (inclusive)
        work_start_hour: Start hour of the working day (0-23)
        work_end_hour: End hour of the working day (1-24)
        include_weekends: Also produce windows for Saturday and Sunday
        now: Reference "current" instant (defaults to datetime.now())

    Returns:
        Work windows in chronological order

    Raises:
        ValueError: If the working hours are invalid

    Example:
        >>> windows = enumerate_work_windows(date(2024, 1, 1), date(2024, 1, 7))
        >>> print(len(windows))  # Mon-Fri
        5
    """
    validate_work_hours(work_start_hour, work_end_hour)

    now = now or datetime.now()
    last_day = min(_as_date(range_end), end_of_day(now).date())
    current_day = _as_date(range_start)

    if last_day < _as_date(range_end):
        logger.info(f"Range end {_as_date(range_end)} clamped to {last_day} (future days are not analysed)")

    windows = []
    while current_day <= last_day:
        if include_weekends or not is_weekend(current_day):
            windows.append(build_work_window(current_day, work_start_hour, work_end_hour))
        current_day += timedelta(days=1)

    return windows
