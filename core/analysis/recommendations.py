"""
Gap Analysis Recommendations

Ordered list of independent rules evaluated against a finished GapReport.
Each rule is a (kind, predicate, builder) triple; predicates are pure
functions of the report, so any subset of rules may fire and the order of
evaluation does not change which ones do.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from utils.formatting import format_minutes
from .gap_models import GapKind, GapReport

LONG_GAP_MINUTES = 120
LOW_COVERAGE_PERCENT = 50
PATTERN_MIN_OCCURRENCES = 3


class RecommendationKind(str, Enum):
    LONG_GAPS = 'long_gaps'
    DAYS_WITHOUT_PRODUCTION = 'days_without_production'
    LOW_COVERAGE = 'low_coverage'
    EARLY_START_PATTERN = 'early_start_pattern'
    EARLY_END_PATTERN = 'early_end_pattern'


@dataclass
class Recommendation:
    kind: RecommendationKind
    severity: str  # 'high', 'medium' or 'low'
    title: str
    description: str
    affected_count: int = 0
    affected_dates: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.kind.value,
            'severity': self.severity,
            'title': self.title,
            'description': self.description,
            'affectedCount': self.affected_count,
            'affectedDates': list(self.affected_dates),
        }


class RecommendationRule(NamedTuple):
    kind: RecommendationKind
    predicate: Callable[[GapReport], bool]
    builder: Callable[[GapReport], Recommendation]


def _long_gaps(report: GapReport):
    return [gap for gap in report.gaps if gap.minutes > LONG_GAP_MINUTES]


def _idle_days(report: GapReport):
    return [day for day in report.daily_analysis.values() if day.sessions_count == 0]


def _low_coverage_days(report: GapReport):
    return [
        day for day in report.daily_analysis.values()
        if day.sessions_count > 0 and day.coverage < LOW_COVERAGE_PERCENT
    ]


def _build_long_gaps(report: GapReport) -> Recommendation:
    gaps = _long_gaps(report)
    longest = max(gap.minutes for gap in gaps)
    return Recommendation(
        kind=RecommendationKind.LONG_GAPS,
        severity='high',
        title='Long production gaps',
        description=(
            f"{len(gaps)} gap(s) longer than {format_minutes(LONG_GAP_MINUTES)} "
            f"(longest {format_minutes(longest)}). Check whether sessions were not logged "
            f"or the line was stopped."
        ),
        affected_count=len(gaps),
        affected_dates=sorted({gap.date.isoformat() for gap in gaps}),
    )


def _build_idle_days(report: GapReport) -> Recommendation:
    days = _idle_days(report)
    return Recommendation(
        kind=RecommendationKind.DAYS_WITHOUT_PRODUCTION,
        severity='medium',
        title='Days without production',
        description=f"{len(days)} working day(s) have no logged production sessions.",
        affected_count=len(days),
        affected_dates=[day.date.isoformat() for day in days],
    )


def _build_low_coverage(report: GapReport) -> Recommendation:
    days = _low_coverage_days(report)
    return Recommendation(
        kind=RecommendationKind.LOW_COVERAGE,
        severity='medium',
        title='Low working-time coverage',
        description=(
            f"{len(days)} day(s) with production used less than "
            f"{LOW_COVERAGE_PERCENT}% of the available working time."
        ),
        affected_count=len(days),
        affected_dates=[day.date.isoformat() for day in days],
    )


def _build_early_start(report: GapReport) -> Recommendation:
    gaps = report.gaps_of_kind(GapKind.BEFORE_FIRST)
    return Recommendation(
        kind=RecommendationKind.EARLY_START_PATTERN,
        severity='low',
        title='Early start pattern',
        description=(
            f"On {len(gaps)} day(s) production began well after the shift start. "
            f"Consider aligning the shift start with the first job."
        ),
        affected_count=len(gaps),
        affected_dates=[gap.date.isoformat() for gap in gaps],
    )


def _build_early_end(report: GapReport) -> Recommendation:
    gaps = report.gaps_of_kind(GapKind.AFTER_LAST)
    return Recommendation(
        kind=RecommendationKind.EARLY_END_PATTERN,
        severity='low',
        title='Early end pattern',
        description=(
            f"On {len(gaps)} day(s) production stopped well before the shift end. "
            f"Consider planning additional work for the end of the shift."
        ),
        affected_count=len(gaps),
        affected_dates=[gap.date.isoformat() for gap in gaps],
    )


RECOMMENDATION_RULES: List[RecommendationRule] = [
    RecommendationRule(
        RecommendationKind.LONG_GAPS,
        lambda report: bool(_long_gaps(report)),
        _build_long_gaps,
    ),
    RecommendationRule(
        RecommendationKind.DAYS_WITHOUT_PRODUCTION,
        lambda report: bool(_idle_days(report)),
        _build_idle_days,
    ),
    RecommendationRule(
        RecommendationKind.LOW_COVERAGE,
        lambda report: bool(_low_coverage_days(report)),
        _build_low_coverage,
    ),
    RecommendationRule(
        RecommendationKind.EARLY_START_PATTERN,
        lambda report: len(report.gaps_of_kind(GapKind.BEFORE_FIRST)) > PATTERN_MIN_OCCURRENCES,
        _build_early_start,
    ),
    RecommendationRule(
        RecommendationKind.EARLY_END_PATTERN,
        lambda report: len(report.gaps_of_kind(GapKind.AFTER_LAST)) > PATTERN_MIN_OCCURRENCES,
        _build_early_end,
    ),
]


def evaluate_recommendations(
    report: GapReport,
    rules: Optional[Sequence[RecommendationRule]] = None
) -> List[Recommendation]:
    """
    Evaluate every rule against the report.

    Args:
        report: Finished gap report
        rules: Rules to evaluate (defaults to RECOMMENDATION_RULES)

    Returns:
        Recommendations of the rules that fired, in rule order
    """
    rules = RECOMMENDATION_RULES if rules is None else rules
    return [rule.builder(report) for rule in rules if rule.predicate(report)]
