"""
Facility Cost Records and Analysis Snapshots

CostRecord is owned by the operator (created/updated through CostService).
CostAnalysis is a derived, versioned snapshot: always recomputable from
(record, session snapshot) and safe to discard.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, Optional

from core.calculations.costs import calculate_cost_per_minute, compute_effective_time
from core.time_windows.models import Session
from core.time_windows.normalize import DEFAULT_TIMEZONE, to_instant
from core.time_windows.work_calendar import end_of_day

_DATE_ONLY = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class CostRecordValidationError(ValueError):
    """Raised when cost record data is rejected at the CRUD boundary."""


@dataclass(frozen=True)
class CostRecord:
    """A facility cost (rent, energy, ...) spread over a date range."""
    id: str
    start_date: datetime
    end_date: datetime
    amount: float
    excluded_task_ids: FrozenSet[str] = field(default_factory=frozenset)
    is_paid: bool = True
    description: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_days(self) -> float:
        return (self.end_date - self.start_date).total_seconds() / 86400.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'amount': self.amount,
            'excludedTaskIds': sorted(self.excluded_task_ids),
            'isPaid': self.is_paid,
            'description': self.description,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }


@dataclass(frozen=True)
class CostAnalysis:
    """Cache snapshot of a cost record's effective-time calculation."""
    record_id: str
    version: int
    effective_minutes: float
    sessions_count: int
    merged_periods_count: int
    duplicates_eliminated: int
    clipped_periods_count: int
    excluded_sessions_count: int
    cost_per_minute: float
    cost_per_hour: float
    last_calculated_at: datetime

    @property
    def effective_hours(self) -> float:
        return self.effective_minutes / 60.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with values rounded for display"""
        return {
            'recordId': self.record_id,
            'version': self.version,
            'effectiveMinutes': round(self.effective_minutes, 2),
            'effectiveHours': round(self.effective_hours, 2),
            'sessionsCount': self.sessions_count,
            'mergedPeriodsCount': self.merged_periods_count,
            'duplicatesEliminated': self.duplicates_eliminated,
            'clippedPeriodsCount': self.clipped_periods_count,
            'excludedSessionsCount': self.excluded_sessions_count,
            'costPerMinute': round(self.cost_per_minute, 2),
            'costPerHour': round(self.cost_per_hour, 2),
            'lastCalculatedAt': self.last_calculated_at,
        }


def build_cost_analysis(
    record: CostRecord,
    sessions: Iterable[Session],
    version: int,
    calculated_at: datetime
) -> CostAnalysis:
    """
    Compute the analysis snapshot of one cost record.

    Pure function of (record, sessions); safe to run concurrently for
    different records.
    """
    effective = compute_effective_time(
        sessions, record.start_date, record.end_date, record.excluded_task_ids
    )
    per_minute = calculate_cost_per_minute(record.amount, effective.effective_minutes)

    return CostAnalysis(
        record_id=record.id,
        version=version,
        effective_minutes=effective.effective_minutes,
        sessions_count=effective.sessions_count,
        merged_periods_count=effective.merged_periods_count,
        duplicates_eliminated=effective.duplicates_eliminated,
        clipped_periods_count=effective.clipped_periods_count,
        excluded_sessions_count=effective.excluded_sessions_count,
        cost_per_minute=per_minute,
        cost_per_hour=per_minute * 60,
        last_calculated_at=calculated_at,
    )


def _is_date_only(value: Any) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and bool(_DATE_ONLY.match(value.strip()))


def parse_cost_bounds(
    start_value: Any,
    end_value: Any,
    timezone: str = DEFAULT_TIMEZONE
) -> tuple:
    """
    Parse and validate the date range of a cost record.

    A date-only start means 00:00 of that day, a date-only end means the
    end of that day, so a Jan 1 - Jan 31 cost spans 31 calendar days.

    Raises:
        CostRecordValidationError: If a date is missing/unparsable or end <= start
    """
    start = to_instant(start_value, timezone)
    end = to_instant(end_value, timezone)

    if start is None or end is None:
        raise CostRecordValidationError("Cost record requires valid start_date and end_date")

    if _is_date_only(end_value):
        end = end_of_day(end)

    if end <= start:
        raise CostRecordValidationError(
            f"End date ({end}) must be after start date ({start})"
        )

    return start, end


def parse_amount(value: Any) -> float:
    """
    Raises:
        CostRecordValidationError: If the amount is not a non-negative number
    """
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise CostRecordValidationError(f"Invalid cost amount: {value!r}")

    if amount != amount or amount < 0:
        raise CostRecordValidationError(f"Cost amount must be a non-negative number, got {value!r}")

    return amount
