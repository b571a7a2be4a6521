"""
Gap Analysis Result Models

Read-only DTOs produced by the gap analyzer and consumed by presentation
and export collaborators.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.time_windows.models import MergedPeriod, Session


class GapKind(str, Enum):
    """Where in the working day a gap sits."""
    FULL_DAY = 'full_day'
    BEFORE_FIRST = 'before_first'
    BETWEEN = 'between'
    AFTER_LAST = 'after_last'


@dataclass
class Gap:
    """An unproductive stretch inside a work window."""
    kind: GapKind
    date: date
    start: datetime
    end: datetime
    minutes: float
    adjacent_periods: List[MergedPeriod] = field(default_factory=list)
    previous_task: Optional[Dict[str, Any]] = None
    next_task: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.kind.value,
            'date': self.date.isoformat(),
            'start': self.start,
            'end': self.end,
            'gapMinutes': round(self.minutes, 2),
            'adjacentPeriods': [p.to_dict() for p in self.adjacent_periods],
            'previousTask': self.previous_task,
            'nextTask': self.next_task,
        }


@dataclass
class DayAnalysis:
    """Per-day utilization figures."""
    date: date
    day_of_week: str
    work_start: datetime
    work_end: datetime
    total_work_minutes: float
    production_minutes: float
    gap_minutes: float
    coverage: int
    sessions_count: int
    merged_periods_count: int
    gaps: List[Gap] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    merged_periods: List[MergedPeriod] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'dayOfWeek': self.day_of_week,
            'workStartTime': self.work_start,
            'workEndTime': self.work_end,
            'totalWorkMinutes': round(self.total_work_minutes, 2),
            'productionMinutes': round(self.production_minutes, 2),
            'gapMinutes': round(self.gap_minutes, 2),
            'coverage': self.coverage,
            'sessionsCount': self.sessions_count,
            'mergedPeriodsCount': self.merged_periods_count,
            'gaps': [g.to_dict() for g in self.gaps],
            'sessionIds': [s.id for s in self.sessions],
        }


@dataclass
class GapSummary:
    """Aggregates over all analysed days."""
    total_work_minutes: float = 0.0
    total_production_minutes: float = 0.0
    total_gap_minutes: float = 0.0
    overall_coverage: float = 0.0
    gaps_count: int = 0
    days_with_gaps: int = 0
    days_without_production: int = 0
    days_analyzed: int = 0
    sessions_count: int = 0
    skipped_sessions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalWorkMinutes': round(self.total_work_minutes, 2),
            'totalProductionMinutes': round(self.total_production_minutes, 2),
            'totalGapMinutes': round(self.total_gap_minutes, 2),
            'overallCoverage': self.overall_coverage,
            'gapsCount': self.gaps_count,
            'daysWithGaps': self.days_with_gaps,
            'daysWithoutProduction': self.days_without_production,
            'daysAnalyzed': self.days_analyzed,
            'sessionsCount': self.sessions_count,
            'skippedSessions': self.skipped_sessions,
        }


@dataclass
class GapReport:
    """Complete gap analysis for a date range."""
    period: Dict[str, Any]
    work_schedule: Dict[str, Any]
    summary: GapSummary
    gaps: List[Gap] = field(default_factory=list)
    daily_analysis: Dict[str, DayAnalysis] = field(default_factory=dict)
    recommendations: List[Any] = field(default_factory=list)

    def gaps_of_kind(self, kind: GapKind) -> List[Gap]:
        return [gap for gap in self.gaps if gap.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': dict(self.period),
            'workSchedule': dict(self.work_schedule),
            'summary': self.summary.to_dict(),
            'gaps': [g.to_dict() for g in self.gaps],
            'dailyAnalysis': {key: day.to_dict() for key, day in self.daily_analysis.items()},
            'recommendations': [r.to_dict() for r in self.recommendations],
        }
