"""
Session Filtering Utilities

Functions to select sessions for a day or a date range. Two different
selection rules are used by different consumers and must stay separate:
- Gap analysis buckets sessions by the calendar date of their start
- Cost apportionment selects every session overlapping the range
"""

from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import Session


def group_sessions_by_start_date(sessions: Iterable[Session]) -> Dict[date, List[Session]]:
    """
    Partition sessions by the calendar date of their start time.

    A session running past midnight is attributed only to the day it started.

    Args:
        sessions: Normalized sessions

    Returns:
        Dictionary mapping date -> sessions starting that day (input order kept)
    """
    by_date = defaultdict(list)
    for session in sessions:
        by_date[session.start_date].append(session)
    return dict(by_date)


def filter_sessions_overlapping(
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime
) -> List[Session]:
    """
    Select sessions whose span overlaps [range_start, range_end].

    Uses an inclusive test (start <= range_end and end >= range_start), so a
    session touching a boundary is selected even though it contributes no time.

    Args:
        sessions: Normalized sessions
        range_start: Start of the range
        range_end: End of the range

    Returns:
        Sessions overlapping the range
    """
    return [
        session for session in sessions
        if session.start_time <= range_end and session.end_time >= range_start
    ]


def exclude_tasks(
    sessions: Iterable[Session],
    excluded_task_ids: Optional[Iterable[str]]
) -> Tuple[List[Session], int]:
    """
    Drop sessions belonging to excluded tasks.

    Sessions without a task are never excluded.

    Args:
        sessions: Normalized sessions
        excluded_task_ids: Task ids to drop

    Returns:
        Tuple of (kept sessions, number of excluded sessions)
    """
    excluded: Set[str] = set(excluded_task_ids or ())
    sessions = list(sessions)
    if not excluded:
        return sessions, 0

    kept = [s for s in sessions if s.task_id is None or s.task_id not in excluded]
    return kept, len(sessions) - len(kept)
