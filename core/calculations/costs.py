"""
Facility Cost Apportionment

Two independent ways of attributing a period-based facility cost:

1. Effective-time mode: cost per minute of de-duplicated production time.
   Sessions overlapping the cost range are merged on their full extents,
   then each merged period is clipped to the range.
2. Calendar-proportional mode: share of a cost falling into a different
   reporting window, by calendar days only (no session data).

Both are pure functions of their inputs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core.time_windows.filters import exclude_tasks, filter_sessions_overlapping
from core.time_windows.merger import merge_spans
from core.time_windows.models import Session

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class EffectiveTimeResult:
    """De-duplicated production time inside a range."""
    effective_minutes: float = 0.0
    sessions_count: int = 0
    merged_periods_count: int = 0
    duplicates_eliminated: int = 0
    clipped_periods_count: int = 0
    excluded_sessions_count: int = 0

    @property
    def effective_hours(self) -> float:
        return self.effective_minutes / 60.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for easy display"""
        return {
            'effectiveMinutes': round(self.effective_minutes, 2),
            'effectiveHours': round(self.effective_hours, 2),
            'sessionsCount': self.sessions_count,
            'mergedPeriodsCount': self.merged_periods_count,
            'duplicatesEliminated': self.duplicates_eliminated,
            'clippedPeriodsCount': self.clipped_periods_count,
            'excludedSessionsCount': self.excluded_sessions_count,
        }


def compute_effective_time(
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime,
    excluded_task_ids: Optional[Iterable[str]] = None
) -> EffectiveTimeResult:
    """
    Calculate effective production minutes inside [range_start, range_end].

    Merging happens on unclipped session extents so the range boundary never
    changes which sessions are considered duplicates; clipping is applied to
    the merged periods afterwards.

    Args:
        sessions: Normalized sessions (must include every session overlapping the range)
        range_start: Start of the cost range
        range_end: End of the cost range
        excluded_task_ids: Tasks whose sessions are left out

    Returns:
        EffectiveTimeResult (all zeros for an empty or inverted range)

    Example:
        >>> result = compute_effective_time(sessions, datetime(2024, 1, 1), datetime(2024, 1, 31))
        >>> print(f"{result.effective_hours:.1f} h in {result.merged_periods_count} periods")
    """
    if range_end <= range_start:
        logger.warning(f"Degenerate range {range_start} → {range_end}, effective time is 0")
        return EffectiveTimeResult()

    overlapping = filter_sessions_overlapping(sessions, range_start, range_end)
    kept, excluded_count = exclude_tasks(overlapping, excluded_task_ids)

    if excluded_count:
        logger.info(f"Excluded {excluded_count} of {len(overlapping)} sessions by task")

    merge_result = merge_spans(kept)

    effective_minutes = 0.0
    clipped_count = 0
    for period in merge_result.periods:
        minutes = period.clipped_minutes(range_start, range_end)
        if minutes <= 0:
            continue
        effective_minutes += minutes
        if period.extends_beyond(range_start, range_end):
            clipped_count += 1
            logger.debug(f"Clipped {period} to range ({minutes:.0f} min)")

    result = EffectiveTimeResult(
        effective_minutes=effective_minutes,
        sessions_count=merge_result.merged_input_count,
        merged_periods_count=len(merge_result.periods),
        duplicates_eliminated=merge_result.duplicates_eliminated,
        clipped_periods_count=clipped_count,
        excluded_sessions_count=excluded_count,
    )

    logger.info(
        f"Effective time {range_start:%Y-%m-%d} → {range_end:%Y-%m-%d}: "
        f"{result.effective_minutes:.2f} min from {result.sessions_count} sessions "
        f"({result.duplicates_eliminated} duplicates, {result.clipped_periods_count} clipped)"
    )

    return result


def calculate_cost_per_minute(amount: float, effective_minutes: float) -> float:
    """
    Cost per effective production minute.

    Returns:
        amount / effective_minutes, or 0.0 when either is not positive
    """
    if amount <= 0 or effective_minutes <= 0:
        return 0.0
    return amount / effective_minutes


def proportional_amount(cost: Any, report_from: datetime, report_to: datetime) -> float:
    """
    Share of a cost falling into a reporting window, by calendar days.

    Args:
        cost: Object with start_date, end_date and amount (e.g. CostRecord)
        report_from: Start of the reporting window
        report_to: End of the reporting window

    Returns:
        amount * overlap_days / total_cost_days, or the full amount when the
        cost range has no length

    Example:
        >>> # 3100 over Jan 1-Jan 31 (31 days), reported for Jan 1-Jan 10 (10 days)
        >>> proportional_amount(cost, datetime(2024, 1, 1), end_of_day(date(2024, 1, 10)))
        1000.0  # approximately
    """
    overlap_start = max(cost.start_date, report_from)
    overlap_end = min(cost.end_date, report_to)
    overlap_days = max(0.0, (overlap_end - overlap_start).total_seconds() / SECONDS_PER_DAY)
    total_cost_days = (cost.end_date - cost.start_date).total_seconds() / SECONDS_PER_DAY

    if total_cost_days <= 0:
        return cost.amount

    return cost.amount * (overlap_days / total_cost_days)


def cost_per_minute_for_range(
    costs: Iterable[Any],
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime
) -> Dict[str, Any]:
    """
    Facility-wide cost per minute for an arbitrary reporting window.

    Every cost overlapping the window contributes its calendar-proportional
    amount; the total is divided by the window's effective production time.

    Returns:
        Dictionary with total_cost, effective time figures, cost_per_minute,
        cost_per_hour and costs_count
    """
    overlapping_costs = [
        cost for cost in costs
        if cost.start_date <= range_end and cost.end_date >= range_start
    ]

    total_cost = 0.0
    for cost in overlapping_costs:
        share = proportional_amount(cost, range_start, range_end)
        total_cost += share
        logger.debug(f"Cost {getattr(cost, 'id', '?')}: {cost.amount} → {share:.2f} in range")

    effective = compute_effective_time(sessions, range_start, range_end)
    per_minute = calculate_cost_per_minute(total_cost, effective.effective_minutes)

    return {
        'total_cost': total_cost,
        'effective_minutes': effective.effective_minutes,
        'effective_hours': effective.effective_hours,
        'sessions_count': effective.sessions_count,
        'merged_periods_count': effective.merged_periods_count,
        'duplicates_eliminated': effective.duplicates_eliminated,
        'cost_per_minute': per_minute,
        'cost_per_hour': per_minute * 60,
        'costs_count': len(overlapping_costs),
    }


def proportional_time_per_task(
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime,
    excluded_task_ids: Optional[Iterable[str]] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Split production time between tasks that ran concurrently.

    Sessions are clipped to the range. Between every pair of consecutive
    boundary points the elapsed time is divided equally among the tasks
    active in that interval.

    Example:
        Task A 10:00-16:00, task B 12:00-18:00:
        10-12 → A gets 120 min, 12-16 → A and B get 120 min each,
        16-18 → B gets 120 min.

    Returns:
        Dictionary mapping task_id -> {task_id, proportional_minutes, sessions_count}
    """
    excluded = set(excluded_task_ids or ())
    clipped = []
    for session in sessions:
        if session.task_id is None or session.task_id in excluded:
            continue
        start = max(session.start_time, range_start)
        end = min(session.end_time, range_end)
        if start >= end:
            continue
        clipped.append((session.task_id, start, end))

    task_time: Dict[str, Dict[str, Any]] = {}
    if not clipped:
        return task_time

    for task_id, _, _ in clipped:
        entry = task_time.setdefault(task_id, {
            'task_id': task_id,
            'proportional_minutes': 0.0,
            'sessions_count': 0,
        })
        entry['sessions_count'] += 1

    time_points = sorted({point for _, start, end in clipped for point in (start, end)})

    for interval_start, interval_end in zip(time_points, time_points[1:]):
        interval_minutes = (interval_end - interval_start).total_seconds() / 60.0
        active_tasks = {
            task_id for task_id, start, end in clipped
            if start <= interval_start and end >= interval_end
        }
        if not active_tasks:
            continue
        share = interval_minutes / len(active_tasks)
        for task_id in active_tasks:
            task_time[task_id]['proportional_minutes'] += share

    logger.info(f"Calculated proportional time for {len(task_time)} tasks")

    return task_time


def allocate_cost_to_tasks(
    cost_per_minute: float,
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime,
    excluded_task_ids: Optional[Iterable[str]] = None,
    task_quantities: Optional[Mapping[str, float]] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Attribute facility cost to production tasks by their proportional time.

    Args:
        cost_per_minute: Cost per effective minute (from compute_effective_time)
        sessions: Normalized sessions overlapping the range
        range_start: Start of the cost range
        range_end: End of the cost range
        excluded_task_ids: Tasks that receive no cost
        task_quantities: Produced quantity per task (defaults to 1)

    Returns:
        Dictionary mapping task_id -> {proportional_minutes, sessions_count,
        quantity, cost_total, cost_per_unit, cost_per_minute}
    """
    if cost_per_minute <= 0:
        logger.info("No cost per minute, skipping task allocation")
        return {}

    task_quantities = task_quantities or {}
    allocation = {}

    for task_id, entry in proportional_time_per_task(
        sessions, range_start, range_end, excluded_task_ids
    ).items():
        quantity = task_quantities.get(task_id) or 1.0
        cost_total = entry['proportional_minutes'] * cost_per_minute
        allocation[task_id] = {
            'task_id': task_id,
            'proportional_minutes': entry['proportional_minutes'],
            'sessions_count': entry['sessions_count'],
            'quantity': quantity,
            'cost_total': cost_total,
            'cost_per_unit': cost_total / quantity,
            'cost_per_minute': cost_per_minute,
        }

    return allocation


def summarize_allocation(allocation: Mapping[str, Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Allocation entries sorted by cost, largest first."""
    return sorted(
        (dict(entry) for entry in allocation.values()),
        key=lambda entry: entry['cost_total'],
        reverse=True,
    )
