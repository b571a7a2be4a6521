"""
Canonical Time Model

Value types shared by every part of the accounting engine:
- Session: a logged production session (read-only input)
- TimeSpan: a candidate interval handed to the merger
- MergedPeriod: a maximal span formed from overlapping/touching sessions
- WorkWindow: the working hours of one business day

All instants are timezone-naive datetimes in the business timezone.
Conversion from other representations happens in normalize.py.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Optional


@dataclass(frozen=True)
class Session:
    """
    A single production session as logged on the shop floor.

    time_spent_minutes is recorded independently of the wall-clock span
    and may diverge from it; both are preserved.
    """
    id: str
    start_time: datetime
    end_time: datetime
    time_spent_minutes: float = 0.0
    quantity: float = 0.0
    task_id: Optional[str] = None

    def __post_init__(self):
        """Validate session bounds"""
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Session {self.id}: end time ({self.end_time}) must be after "
                f"start time ({self.start_time})"
            )

    @property
    def duration_minutes(self) -> float:
        """Wall-clock length of the session in minutes"""
        return (self.end_time - self.start_time).total_seconds() / 60.0

    @property
    def start_date(self) -> date:
        """Calendar date the session is attributed to"""
        return self.start_time.date()

    def to_span(self) -> "TimeSpan":
        return TimeSpan(self.start_time, self.end_time, source=self)

    def __repr__(self) -> str:
        return (
            f"Session({self.id}: {self.start_time.strftime('%Y-%m-%d %H:%M')} → "
            f"{self.end_time.strftime('%Y-%m-%d %H:%M')}, task={self.task_id})"
        )


@dataclass
class TimeSpan:
    """
    Interval handed to the merger.

    Not validated on construction: the merger discards empty or inverted
    spans and counts them.
    """
    start: Optional[datetime]
    end: Optional[datetime]
    source: Any = None

    @property
    def duration_minutes(self) -> float:
        """Span length in minutes (0 for an invalid span)"""
        if self.start is None or self.end is None or self.end <= self.start:
            return 0.0
        return (self.end - self.start).total_seconds() / 60.0


@dataclass
class MergedPeriod:
    """
    Continuous production coverage built from one or more sessions.

    Within a list of periods produced by the merger, periods are sorted by
    start and separated by a strictly positive gap.
    """
    start: datetime
    end: datetime
    source_sessions: List[Any] = field(default_factory=list)

    @property
    def duration_minutes(self) -> float:
        """Calculate period duration in minutes"""
        return (self.end - self.start).total_seconds() / 60.0

    @property
    def sessions_count(self) -> int:
        return len(self.source_sessions)

    def clipped_minutes(self, range_start: datetime, range_end: datetime) -> float:
        """Minutes of this period that fall inside [range_start, range_end]"""
        effective_start = max(self.start, range_start)
        effective_end = min(self.end, range_end)
        return max(0.0, (effective_end - effective_start).total_seconds() / 60.0)

    def extends_beyond(self, range_start: datetime, range_end: datetime) -> bool:
        """True if the period crosses either range boundary"""
        return self.start < range_start or self.end > range_end

    def to_dict(self) -> dict:
        return {
            'start': self.start,
            'end': self.end,
            'duration_minutes': round(self.duration_minutes, 2),
            'session_ids': [getattr(s, 'id', None) for s in self.source_sessions],
        }

    def __repr__(self) -> str:
        return (
            f"MergedPeriod({self.start.strftime('%Y-%m-%d %H:%M')} → "
            f"{self.end.strftime('%Y-%m-%d %H:%M')}, sessions={self.sessions_count})"
        )


@dataclass(frozen=True)
class WorkWindow:
    """Working hours of a single business day."""
    date: date
    work_start: datetime
    work_end: datetime

    @property
    def duration_minutes(self) -> float:
        return (self.work_end - self.work_start).total_seconds() / 60.0

    @property
    def day_of_week(self) -> str:
        return self.date.strftime('%A')
