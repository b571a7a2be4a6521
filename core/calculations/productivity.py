"""
Weekly Productivity and Trends

Productivity is produced quantity per logged hour. Sessions are bucketed by
the ISO week of their start time; consecutive weeks are compared pairwise
and the whole series is classified and fitted with a least-squares trend
line.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core.analysis.tasks import TaskLookup, resolve_task, task_label
from core.time_windows.normalize import DEFAULT_TIMEZONE, normalize_sessions
from utils.formatting import format_minutes, format_week_label

from .time_analysis import sessions_to_frame

logger = logging.getLogger(__name__)

WEEK_CHANGE_THRESHOLD = 5.0
SERIES_IMPROVING_RATIO = 1.1
SERIES_DECLINING_RATIO = 0.9
SIGNIFICANT_CHANGE_PERCENT = 10.0
LOW_EFFICIENCY_PERCENT = 50
DOMINANT_PRODUCT_PERCENT = 50.0


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass
class TaskShare:
    """One task's share of a week's production."""
    task_key: str
    task_id: Optional[str]
    task_name: str
    mo_number: str
    total_minutes: float = 0.0
    total_quantity: float = 0.0
    sessions_count: int = 0
    productivity: float = 0.0
    time_percentage: float = 0.0
    quantity_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskKey': self.task_key,
            'taskId': self.task_id,
            'taskName': self.task_name,
            'moNumber': self.mo_number,
            'totalTime': self.total_minutes,
            'totalTimeHours': round(self.total_minutes / 60, 2),
            'totalQuantity': self.total_quantity,
            'sessionsCount': self.sessions_count,
            'productivity': self.productivity,
            'timePercentage': self.time_percentage,
            'quantityPercentage': self.quantity_percentage,
        }


@dataclass
class WeeklyMetrics:
    """Production metrics of one ISO week."""
    week: str
    total_minutes: float = 0.0
    total_quantity: float = 0.0
    sessions_count: int = 0
    productivity: float = 0.0
    efficiency: int = 0
    productivity_change: float = 0.0
    quantity_change: float = 0.0
    time_change: float = 0.0
    sessions_change: float = 0.0
    trend: str = 'stable'
    week_start: Optional[date] = None
    week_end: Optional[date] = None
    breakdown: List[TaskShare] = field(default_factory=list)
    daily_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    trend_line: Optional[float] = None

    @property
    def total_hours(self) -> float:
        return round(self.total_minutes / 60, 2)

    @property
    def top_product(self) -> Optional[TaskShare]:
        return self.breakdown[0] if self.breakdown else None

    @property
    def week_label(self) -> str:
        return format_week_label(self.week)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for easy display"""
        top = self.top_product
        return {
            'week': self.week,
            'weekLabel': self.week_label,
            'weekStart': self.week_start,
            'weekEnd': self.week_end,
            'totalTime': self.total_minutes,
            'totalTimeHours': self.total_hours,
            'totalTimeFormatted': format_minutes(self.total_minutes),
            'totalQuantity': self.total_quantity,
            'sessionsCount': self.sessions_count,
            'productivity': self.productivity,
            'efficiency': self.efficiency,
            'productivityChange': self.productivity_change,
            'quantityChange': self.quantity_change,
            'timeChange': self.time_change,
            'sessionsChange': self.sessions_change,
            'trend': self.trend,
            'trendLine': self.trend_line,
            'topProduct': top.to_dict() if top else None,
            'breakdown': [share.to_dict() for share in self.breakdown],
            'dailyBreakdown': self.daily_breakdown,
        }


def week_bounds(week_key: str) -> Tuple[date, date]:
    """
    Monday and Sunday of an ISO week key (YYYY-Www).

    Raises:
        ValueError: If the key is not a valid ISO week
    """
    try:
        year_part, week_part = week_key.split('-W')
        year, week = int(year_part), int(week_part)
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid ISO week key: {week_key!r}")
    return date.fromisocalendar(year, week, 1), date.fromisocalendar(year, week, 7)


def calculate_productivity(quantity: float, minutes: float) -> float:
    """Units per hour rounded to 2 decimals, 0 when no time was logged."""
    hours = minutes / 60
    if hours <= 0:
        return 0.0
    return _round_half_up(float(quantity) / hours, 2)


def calculate_efficiency(minutes: float, standard_work_week_hours: float = 40.0) -> int:
    """Share of a standard work week that was logged, capped at 100%."""
    if standard_work_week_hours <= 0:
        return 0
    hours = round(minutes / 60, 2)
    return min(int(_round_half_up(hours / standard_work_week_hours * 100)), 100)


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent rounded to 1 decimal, 0 when previous is 0."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def classify_change(change: float) -> str:
    if change > WEEK_CHANGE_THRESHOLD:
        return 'improving'
    if change < -WEEK_CHANGE_THRESHOLD:
        return 'declining'
    return 'stable'


def calculate_weekly_productivity(frame: pd.DataFrame) -> List[WeeklyMetrics]:
    """
    Per-week totals and productivity from a session frame.

    Args:
        frame: Session frame from sessions_to_frame()

    Returns:
        WeeklyMetrics in chronological order (no comparisons yet)
    """
    if frame.empty:
        return []

    grouped = frame.groupby('week_key', sort=True).agg(
        total_minutes=('time_spent_minutes', 'sum'),
        total_quantity=('quantity', 'sum'),
        sessions_count=('session_id', 'count'),
    )

    weeks = []
    for week_key, row in grouped.iterrows():
        week_start, week_end = week_bounds(week_key)
        weeks.append(WeeklyMetrics(
            week=week_key,
            total_minutes=float(row['total_minutes']),
            total_quantity=float(row['total_quantity']),
            sessions_count=int(row['sessions_count']),
            productivity=calculate_productivity(row['total_quantity'], row['total_minutes']),
            week_start=week_start,
            week_end=week_end,
        ))
    return weeks


def compare_weeks(current: WeeklyMetrics, previous: Optional[WeeklyMetrics]) -> WeeklyMetrics:
    """
    Fill the week-over-week changes of `current`.

    A first week, or one following a week with zero productivity, has all
    changes 0 and trend 'stable'.
    """
    if previous is None or previous.productivity == 0:
        current.productivity_change = 0.0
        current.quantity_change = 0.0
        current.time_change = 0.0
        current.sessions_change = 0.0
        current.trend = 'stable'
        return current

    current.productivity_change = percent_change(current.productivity, previous.productivity)
    current.quantity_change = percent_change(current.total_quantity, previous.total_quantity)
    current.time_change = percent_change(current.total_hours, previous.total_hours)
    current.sessions_change = percent_change(current.sessions_count, previous.sessions_count)
    current.trend = classify_change(
        (current.productivity - previous.productivity) / previous.productivity * 100
    )
    return current


def weekly_breakdown(week_frame: pd.DataFrame, task_lookup: Optional[TaskLookup] = None) -> List[TaskShare]:
    """
    Aggregate one week's sessions by task key.

    The key is the task's MO number, then name, then product name, then
    'Unknown'. Entries are sorted by logged time, largest first.
    """
    shares: Dict[str, TaskShare] = {}
    for row in week_frame.itertuples(index=False):
        task = resolve_task(task_lookup, row.task_id)
        key = task_label(task)
        share = shares.get(key)
        if share is None:
            share = shares[key] = TaskShare(
                task_key=key,
                task_id=row.task_id,
                task_name=task.get('name') or task.get('productName') or task_label(None),
                mo_number=task.get('moNumber') or '',
            )
        share.total_minutes += row.time_spent_minutes
        share.total_quantity += row.quantity
        share.sessions_count += 1

    total_minutes = sum(s.total_minutes for s in shares.values())
    total_quantity = sum(s.total_quantity for s in shares.values())

    for share in shares.values():
        share.productivity = calculate_productivity(share.total_quantity, share.total_minutes)
        if total_minutes > 0:
            share.time_percentage = _round_half_up(share.total_minutes / total_minutes * 100, 1)
        if total_quantity > 0:
            share.quantity_percentage = _round_half_up(share.total_quantity / total_quantity * 100, 1)

    return sorted(shares.values(), key=lambda s: s.total_minutes, reverse=True)


def daily_breakdown(week_frame: pd.DataFrame, week_start: date) -> List[Dict[str, Any]]:
    """Totals for each day Monday to Sunday of a week, empty days included."""
    days = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        day_rows = week_frame[week_frame['day_key'] == day.isoformat()]
        minutes = float(day_rows['time_spent_minutes'].sum()) if len(day_rows) else 0.0
        quantity = float(day_rows['quantity'].sum()) if len(day_rows) else 0.0
        days.append({
            'date': day.isoformat(),
            'dayName': day.strftime('%A'),
            'dayShort': day.strftime('%a'),
            'totalTime': minutes,
            'totalTimeHours': round(minutes / 60, 2),
            'totalQuantity': quantity,
            'sessionsCount': len(day_rows),
            'productivity': calculate_productivity(quantity, minutes),
        })
    return days


def analyze_weekly_trends(weeks: Sequence[WeeklyMetrics]) -> Dict[str, Any]:
    """
    Classify the whole series and report its extremes.

    The series is split at floor(n/2); the second half must average more
    than 1.1x (less than 0.9x) the first half to count as improving
    (declining). Fewer than two weeks is always 'stable'.

    Returns:
        Dictionary with trend, average/max/min productivity, best_week,
        worst_week and the half averages
    """
    if not weeks:
        return {
            'trend': 'stable',
            'average_productivity': 0.0,
            'max_productivity': 0.0,
            'min_productivity': 0.0,
            'best_week': None,
            'worst_week': None,
            'first_half_average': 0.0,
            'second_half_average': 0.0,
        }

    productivities = np.array([w.productivity for w in weeks], dtype=float)
    max_productivity = float(productivities.max())
    min_productivity = float(productivities.min())

    trend = 'stable'
    first_half_average = second_half_average = float(productivities.mean())
    if len(weeks) >= 2:
        midpoint = len(weeks) // 2
        first_half_average = float(productivities[:midpoint].mean())
        second_half_average = float(productivities[midpoint:].mean())
        if second_half_average > first_half_average * SERIES_IMPROVING_RATIO:
            trend = 'improving'
        elif second_half_average < first_half_average * SERIES_DECLINING_RATIO:
            trend = 'declining'

    return {
        'trend': trend,
        'average_productivity': round(float(productivities.mean()), 2),
        'max_productivity': round(max_productivity, 2),
        'min_productivity': round(min_productivity, 2),
        'best_week': next(w for w in weeks if w.productivity == max_productivity),
        'worst_week': next(w for w in weeks if w.productivity == min_productivity),
        'first_half_average': first_half_average,
        'second_half_average': second_half_average,
    }


def linear_regression(values: Sequence[float]) -> Optional[Tuple[float, float]]:
    """
    Ordinary least squares fit of values against their index.

    Returns:
        (slope, intercept), or None when the fit is undefined (fewer than
        two points)

    Example:
        >>> linear_regression([10, 12, 9, 15])
        (1.2, 9.7)
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    x = np.arange(n, dtype=float)

    denominator = n * np.sum(x * x) - np.sum(x) ** 2
    if denominator == 0:
        return None

    slope = (n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denominator
    intercept = (np.sum(y) - slope * np.sum(x)) / n
    return float(slope), float(intercept)


def attach_trend_line(weeks: List[WeeklyMetrics]) -> List[WeeklyMetrics]:
    """Set trend_line on every week; the series is left unmodified if the fit is undefined."""
    fit = linear_regression([w.productivity for w in weeks])
    if fit is None:
        return weeks

    slope, intercept = fit
    for index, week in enumerate(weeks):
        week.trend_line = round(slope * index + intercept, 2)
    return weeks


def prepare_weekly_data(
    sessions: Iterable[Any],
    task_lookup: Optional[TaskLookup] = None,
    standard_work_week_hours: float = 40.0,
    timezone: str = DEFAULT_TIMEZONE
) -> List[WeeklyMetrics]:
    """
    Weekly productivity series with comparisons, breakdowns and trend line.

    Args:
        sessions: Session objects or raw session records
        task_lookup: Optional task metadata lookup for the breakdown
        standard_work_week_hours: Hours counted as 100% efficiency
        timezone: Business timezone for normalizing raw records

    Returns:
        WeeklyMetrics in chronological order

    Example:
        >>> weeks = prepare_weekly_data(sessions, tasks)
        >>> for week in weeks:
        ...     print(f"{week.week}: {week.productivity} units/h ({week.trend})")
    """
    normalized = normalize_sessions(sessions, timezone)
    frame = sessions_to_frame(normalized.sessions)
    weeks = calculate_weekly_productivity(frame)

    previous = None
    for week in weeks:
        week_frame = frame[frame['week_key'] == week.week]
        compare_weeks(week, previous)
        week.efficiency = calculate_efficiency(week.total_minutes, standard_work_week_hours)
        week.breakdown = weekly_breakdown(week_frame, task_lookup)
        week.daily_breakdown = daily_breakdown(week_frame, week.week_start)
        previous = week

    attach_trend_line(weeks)

    logger.info(f"Prepared {len(weeks)} weeks of productivity data")

    return weeks


def generate_weekly_insights(weeks: Sequence[WeeklyMetrics]) -> List[Dict[str, str]]:
    """
    Short findings about the latest week and the whole series.

    Returns:
        List of {type, title, description} dictionaries
    """
    insights = []
    if not weeks:
        return insights

    trends = analyze_weekly_trends(weeks)
    latest = weeks[-1]

    if trends['trend'] == 'improving':
        insights.append({
            'type': 'success',
            'title': 'Productivity rising',
            'description': 'Productivity in the second half of the period is up. Good work!',
        })
    elif trends['trend'] == 'declining':
        insights.append({
            'type': 'warning',
            'title': 'Productivity falling',
            'description': 'Productivity in the second half of the period is down. Worth investigating.',
        })

    if latest.productivity_change > SIGNIFICANT_CHANGE_PERCENT:
        insights.append({
            'type': 'success',
            'title': 'Significant increase',
            'description': f"Productivity last week rose by {latest.productivity_change:.1f}%.",
        })
    elif latest.productivity_change < -SIGNIFICANT_CHANGE_PERCENT:
        insights.append({
            'type': 'error',
            'title': 'Significant drop',
            'description': f"Productivity last week fell by {abs(latest.productivity_change):.1f}%.",
        })

    if len(weeks) > 1 and latest.productivity == trends['max_productivity']:
        insights.append({
            'type': 'success',
            'title': 'New record',
            'description': f"Last week reached the best productivity: {latest.productivity} units/h.",
        })

    if latest.efficiency < LOW_EFFICIENCY_PERCENT:
        insights.append({
            'type': 'info',
            'title': 'Low time utilization',
            'description': f"Only {latest.efficiency}% of the standard week was logged.",
        })

    top = latest.top_product
    if top is not None and top.time_percentage > DOMINANT_PRODUCT_PERCENT:
        insights.append({
            'type': 'info',
            'title': 'Dominant product',
            'description': f"{top.task_name} took {top.time_percentage}% of production time.",
        })

    return insights
