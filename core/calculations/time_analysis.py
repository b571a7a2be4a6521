"""
Production Time Summary

Aggregates logged production time by task, day, ISO week and month.

Totals are based on the recorded time_spent_minutes of each session, the
same figure gap coverage and weekly productivity use.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from core.analysis.tasks import TaskLookup, resolve_task, task_label
from core.time_windows.normalize import DEFAULT_TIMEZONE, normalize_sessions

logger = logging.getLogger(__name__)

FRAME_COLUMNS = [
    'session_id', 'task_id', 'task_key', 'start_time', 'end_time',
    'time_spent_minutes', 'quantity', 'day_key', 'week_key', 'month_key', 'weekday',
]


def iso_week_key(dt: datetime) -> str:
    """
    ISO week key of a timestamp.

    Example:
        >>> iso_week_key(datetime(2024, 1, 10))
        '2024-W02'
    """
    iso = dt.isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def sessions_to_frame(sessions: Iterable[Any], task_lookup: Optional[TaskLookup] = None) -> pd.DataFrame:
    """
    Build a session DataFrame with calendar keys.

    Args:
        sessions: Normalized Session objects
        task_lookup: Optional task metadata lookup used for task_key

    Returns:
        DataFrame with FRAME_COLUMNS (empty but typed when there are no sessions)
    """
    rows = []
    for session in sessions:
        task = resolve_task(task_lookup, session.task_id) if task_lookup is not None else None
        rows.append({
            'session_id': session.id,
            'task_id': session.task_id,
            'task_key': task_label(task) if task is not None else (session.task_id or task_label(None)),
            'start_time': session.start_time,
            'end_time': session.end_time,
            'time_spent_minutes': float(session.time_spent_minutes or 0),
            'quantity': float(session.quantity or 0),
            'day_key': session.start_time.strftime('%Y-%m-%d'),
            'week_key': iso_week_key(session.start_time),
            'month_key': session.start_time.strftime('%Y-%m'),
            'weekday': session.start_time.weekday(),
        })

    if not rows:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def summarize_by(frame: pd.DataFrame, key: str) -> pd.DataFrame:
    """
    Group a session frame by one key column.

    Returns:
        DataFrame with columns [key, total_minutes, total_quantity,
        sessions_count], sorted by key
    """
    if frame.empty:
        return pd.DataFrame(columns=[key, 'total_minutes', 'total_quantity', 'sessions_count'])

    grouped = (
        frame.groupby(key, sort=True)
        .agg(
            total_minutes=('time_spent_minutes', 'sum'),
            total_quantity=('quantity', 'sum'),
            sessions_count=('session_id', 'count'),
        )
        .reset_index()
    )
    return grouped


@dataclass
class TimeAnalysis:
    """Aggregated production time over a set of sessions."""
    total_sessions: int = 0
    total_minutes: float = 0.0
    total_quantity: float = 0.0
    average_minutes_per_session: float = 0.0
    average_minutes_per_unit: float = 0.0
    skipped_sessions: int = 0
    frame: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=FRAME_COLUMNS))
    by_task: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_day: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_week: pd.DataFrame = field(default_factory=pd.DataFrame)
    by_month: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def total_hours(self) -> float:
        return self.total_minutes / 60.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for easy display"""
        return {
            'totalSessions': self.total_sessions,
            'totalMinutes': round(self.total_minutes, 2),
            'totalHours': round(self.total_hours, 2),
            'totalQuantity': self.total_quantity,
            'averageMinutesPerSession': round(self.average_minutes_per_session, 2),
            'averageMinutesPerUnit': round(self.average_minutes_per_unit, 2),
            'skippedSessions': self.skipped_sessions,
            'byTask': self.by_task.to_dict(orient='records'),
            'byDay': self.by_day.to_dict(orient='records'),
            'byWeek': self.by_week.to_dict(orient='records'),
            'byMonth': self.by_month.to_dict(orient='records'),
        }


def analyze_production_time(
    sessions: Iterable[Any],
    task_lookup: Optional[TaskLookup] = None,
    timezone: str = DEFAULT_TIMEZONE
) -> TimeAnalysis:
    """
    Summarize production time by task, day, week and month.

    Args:
        sessions: Session objects or raw session records
        task_lookup: Optional task metadata lookup for the task grouping
        timezone: Business timezone for normalizing raw records

    Returns:
        TimeAnalysis (zeros and empty frames when there are no sessions)
    """
    normalized = normalize_sessions(sessions, timezone)
    frame = sessions_to_frame(normalized.sessions, task_lookup)

    analysis = TimeAnalysis(skipped_sessions=normalized.skipped_sessions, frame=frame)
    analysis.by_task = summarize_by(frame, 'task_key')
    analysis.by_day = summarize_by(frame, 'day_key')
    analysis.by_week = summarize_by(frame, 'week_key')
    analysis.by_month = summarize_by(frame, 'month_key')

    if frame.empty:
        logger.info("No sessions to analyze")
        return analysis

    analysis.total_sessions = len(frame)
    analysis.total_minutes = float(frame['time_spent_minutes'].sum())
    analysis.total_quantity = float(frame['quantity'].sum())
    analysis.average_minutes_per_session = analysis.total_minutes / analysis.total_sessions
    if analysis.total_quantity > 0:
        analysis.average_minutes_per_unit = analysis.total_minutes / analysis.total_quantity

    logger.info(
        f"Analyzed {analysis.total_sessions} sessions: {analysis.total_hours:.1f} h, "
        f"{analysis.total_quantity:.0f} units across {len(analysis.by_week)} weeks"
    )

    return analysis
