"""
Production Gap Analysis

Detects unproductive stretches inside the configured working calendar.

For each business day:
1. Sessions are attributed to the calendar date of their start time
2. The day's sessions are merged on their full, unclipped extents
3. Gaps before the first period, between periods and after the last
   period are reported when they reach min_gap_minutes
4. A day without sessions is one full-day gap

Gap bounds are clipped to the work window, so periods outside it never
produce negative or out-of-window gaps; reported gaps plus the clipped
periods always add up to the whole window.

Coverage is based on the recorded time_spent_minutes of the sessions, not
on the merged wall-clock span, so logged time may exceed or undercut it.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from core.time_windows.filters import group_sessions_by_start_date
from core.time_windows.merger import merge_spans
from core.time_windows.models import MergedPeriod, WorkWindow
from core.time_windows.normalize import DEFAULT_TIMEZONE, normalize_sessions
from core.time_windows.work_calendar import enumerate_work_windows
from utils.formatting import format_minutes, format_timestamp

from .gap_models import DayAnalysis, Gap, GapKind, GapReport, GapSummary
from .recommendations import evaluate_recommendations
from .tasks import TaskLookup, resolve_task

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def _adjacent_task(period: Optional[MergedPeriod], last: bool, task_lookup: Optional[TaskLookup]):
    """Task metadata of the session bordering a gap."""
    if period is None or not period.source_sessions:
        return None
    if last:
        session = max(period.source_sessions, key=lambda s: s.end_time)
    else:
        session = period.source_sessions[0]
    return resolve_task(task_lookup, getattr(session, 'task_id', None))


def detect_day_gaps(
    window: WorkWindow,
    periods: List[MergedPeriod],
    min_gap_minutes: float,
    task_lookup: Optional[TaskLookup] = None
) -> List[Gap]:
    """
    Classify the gaps of one work window.

    Gap bounds are clipped to the window; for periods inside the window
    this equals the plain differences (first.start - work_start, etc.).

    Args:
        window: The day's work window
        periods: Merged periods of the day's sessions (sorted, non-overlapping)
        min_gap_minutes: Shortest gap that is reported
        task_lookup: Optional task metadata lookup for enrichment

    Returns:
        Gaps in chronological order
    """
    if not periods:
        return [Gap(
            kind=GapKind.FULL_DAY,
            date=window.date,
            start=window.work_start,
            end=window.work_end,
            minutes=window.duration_minutes,
        )]

    gaps = []

    def emit(kind: GapKind, start: datetime, end: datetime,
             before: Optional[MergedPeriod], after: Optional[MergedPeriod]):
        minutes = (end - start).total_seconds() / 60.0
        if minutes <= 0 or minutes < min_gap_minutes:
            return
        logger.debug(
            f"{kind.value} gap {format_timestamp(start)} → {format_timestamp(end)} "
            f"({format_minutes(minutes)})"
        )
        gaps.append(Gap(
            kind=kind,
            date=window.date,
            start=start,
            end=end,
            minutes=minutes,
            adjacent_periods=[p for p in (before, after) if p is not None],
            previous_task=_adjacent_task(before, True, task_lookup),
            next_task=_adjacent_task(after, False, task_lookup),
        ))

    first = periods[0]
    emit(GapKind.BEFORE_FIRST, window.work_start, min(first.start, window.work_end), None, first)

    for current, following in zip(periods, periods[1:]):
        emit(
            GapKind.BETWEEN,
            max(current.end, window.work_start),
            min(following.start, window.work_end),
            current,
            following,
        )

    last = periods[-1]
    emit(GapKind.AFTER_LAST, max(last.end, window.work_start), window.work_end, last, None)

    return gaps


def analyze_production_gaps(
    sessions: Iterable[Any],
    start_date: date,
    end_date: date,
    work_start_hour: int = 6,
    work_end_hour: int = 22,
    include_weekends: bool = False,
    min_gap_minutes: float = 30,
    now: Optional[datetime] = None,
    task_lookup: Optional[TaskLookup] = None,
    timezone: str = DEFAULT_TIMEZONE
) -> GapReport:
    """
    Analyse production gaps against the working calendar.

    Args:
        sessions: Session objects or raw session records
        start_date: First day of the analysis
        end_date: Last day of the analysis (clamped to today)
        work_start_hour: Start hour of the working day
        work_end_hour: End hour of the working day
        include_weekends: Analyse Saturdays and Sundays too
        min_gap_minutes: Shortest gap that is reported
        now: Reference "current" instant (defaults to datetime.now())
        task_lookup: Optional task metadata lookup for gap enrichment
        timezone: Business timezone for normalizing raw records

    Returns:
        GapReport with summary, gaps, per-day analysis and recommendations

    Raises:
        ValueError: If the working hours are invalid

    Example:
        >>> report = analyze_production_gaps(sessions, date(2024, 1, 1), date(2024, 1, 31))
        >>> print(f"Coverage: {report.summary.overall_coverage}%")
    """
    normalized = normalize_sessions(sessions, timezone)
    windows = enumerate_work_windows(
        start_date, end_date, work_start_hour, work_end_hour, include_weekends, now
    )
    sessions_by_date = group_sessions_by_start_date(normalized.sessions)

    summary = GapSummary(skipped_sessions=normalized.skipped_sessions)
    all_gaps: List[Gap] = []
    daily_analysis = {}

    for window in windows:
        day_sessions = sessions_by_date.get(window.date, [])
        merge_result = merge_spans(day_sessions)
        day_gaps = detect_day_gaps(window, merge_result.periods, min_gap_minutes, task_lookup)

        work_minutes = window.duration_minutes
        production_minutes = sum(s.time_spent_minutes for s in day_sessions)
        gap_minutes = sum(g.minutes for g in day_gaps)
        coverage = round_half_up(production_minutes / work_minutes * 100) if work_minutes > 0 else 0

        daily_analysis[window.date.isoformat()] = DayAnalysis(
            date=window.date,
            day_of_week=window.day_of_week,
            work_start=window.work_start,
            work_end=window.work_end,
            total_work_minutes=work_minutes,
            production_minutes=production_minutes,
            gap_minutes=gap_minutes,
            coverage=coverage,
            sessions_count=len(day_sessions),
            merged_periods_count=len(merge_result.periods),
            gaps=day_gaps,
            sessions=day_sessions,
            merged_periods=merge_result.periods,
        )

        all_gaps.extend(day_gaps)
        summary.total_work_minutes += work_minutes
        summary.total_production_minutes += production_minutes
        summary.total_gap_minutes += gap_minutes
        summary.sessions_count += len(day_sessions)
        if day_gaps:
            summary.days_with_gaps += 1
        if not day_sessions:
            summary.days_without_production += 1

    summary.days_analyzed = len(windows)
    summary.gaps_count = len(all_gaps)
    if summary.total_work_minutes > 0:
        summary.overall_coverage = round(
            summary.total_production_minutes / summary.total_work_minutes * 100, 2
        )

    effective_end = windows[-1].date if windows else None
    report = GapReport(
        period={'start_date': start_date, 'end_date': end_date, 'effective_end_date': effective_end},
        work_schedule={
            'work_start_hour': work_start_hour,
            'work_end_hour': work_end_hour,
            'include_weekends': include_weekends,
            'min_gap_minutes': min_gap_minutes,
        },
        summary=summary,
        gaps=all_gaps,
        daily_analysis=daily_analysis,
    )
    report.recommendations = evaluate_recommendations(report)

    logger.info(
        f"Gap analysis {start_date} → {end_date}: {summary.days_analyzed} days, "
        f"{summary.gaps_count} gaps ({summary.total_gap_minutes:.0f} min), "
        f"coverage {summary.overall_coverage}%"
    )

    return report
