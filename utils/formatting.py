"""
Formatting Utilities

Functions for formatting timestamps, durations and ISO week keys for
messages and logs.
"""

import logging
from datetime import date, datetime
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


def format_timestamp(iso_timestamp) -> str:
    """
    Convert a timestamp to readable format (YYYY-MM-DD HH:MM), handling potential errors.

    Args:
        iso_timestamp: ISO timestamp string, datetime object, or None

    Returns:
        Formatted timestamp string or empty string if invalid
    """
    if iso_timestamp is None or (not isinstance(iso_timestamp, str) and pd.isna(iso_timestamp)):
        return ""
    try:
        if isinstance(iso_timestamp, datetime):
            return iso_timestamp.strftime("%Y-%m-%d %H:%M")
        # Handle potential 'Z' suffix for UTC
        if isinstance(iso_timestamp, str):
            dt_obj = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
            return dt_obj.strftime("%Y-%m-%d %H:%M")
        return datetime.fromisoformat(str(iso_timestamp)).strftime("%Y-%m-%d %H:%M")

    except (ValueError, TypeError):
        # If parsing fails, return the original string or an empty string
        return str(iso_timestamp) if iso_timestamp else ""


def format_minutes(minutes: Optional[float]) -> str:
    """
    Format a duration in minutes as "Xh Ymin" or "Y min".

    Example:
        >>> format_minutes(135)
        '2h 15min'
    """
    if not minutes:
        return "0 min"

    hours = int(minutes // 60)
    remaining = int(round(minutes % 60))
    if remaining == 60:
        hours += 1
        remaining = 0

    if hours > 0:
        return f"{hours}h {remaining}min"
    return f"{remaining} min"


def format_week_label(week_key: str, week_prefix: str = "Week") -> str:
    """
    Format an ISO week key (YYYY-Www) as "Week 02/24 (08.01 - 14.01)".

    Returns the key unchanged if it cannot be parsed.
    """
    try:
        year_part, week_part = week_key.split("-W")
        year, week = int(year_part), int(week_part)
        week_start = date.fromisocalendar(year, week, 1)
        week_end = date.fromisocalendar(year, week, 7)
    except (ValueError, AttributeError) as e:
        logger.warning(f"Cannot format week key {week_key!r}: {e}")
        return week_key

    return (
        f"{week_prefix} {week:02d}/{str(year)[2:]} "
        f"({week_start.strftime('%d.%m')} - {week_end.strftime('%d.%m')})"
    )
