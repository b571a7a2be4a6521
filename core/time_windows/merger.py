"""
Interval Merging

Coalesces overlapping or touching spans into ordered, non-overlapping
MergedPeriods. Used to eliminate duplicate session logging before any
time is counted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List

import pandas as pd

from .models import MergedPeriod, Session, TimeSpan

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged periods plus bookkeeping about the input."""
    periods: List[MergedPeriod] = field(default_factory=list)
    merged_input_count: int = 0
    skipped_count: int = 0

    @property
    def duplicates_eliminated(self) -> int:
        """Number of spans absorbed into another span's period"""
        return self.merged_input_count - len(self.periods)

    @property
    def total_minutes(self) -> float:
        return sum(period.duration_minutes for period in self.periods)

    def __iter__(self):
        return iter(self.periods)

    def __len__(self) -> int:
        return len(self.periods)


def _is_instant(value: Any) -> bool:
    return isinstance(value, datetime) and not pd.isna(value)


def as_span(item: Any) -> TimeSpan:
    """Accept a TimeSpan or a Session and return a TimeSpan."""
    if isinstance(item, TimeSpan):
        return item
    if isinstance(item, Session):
        return item.to_span()
    raise TypeError(f"Cannot merge object of type {type(item).__name__}")


def merge_spans(spans: Iterable[Any]) -> MergeResult:
    """
    Merge overlapping or touching spans.

    A span whose start equals the current period's end is merged into it,
    so two consecutive periods are always separated by a positive gap.
    Spans with missing timestamps or start >= end are skipped and counted.

    Args:
        spans: TimeSpan or Session objects, in any order

    Returns:
        MergeResult with periods sorted ascending by start

    Example:
        >>> result = merge_spans([s1, s2, s3])
        >>> print(f"{len(result)} periods, {result.duplicates_eliminated} duplicates")
    """
    result = MergeResult()
    valid_spans = []

    for item in spans:
        span = as_span(item)
        if not (_is_instant(span.start) and _is_instant(span.end)) or span.start >= span.end:
            result.skipped_count += 1
            continue
        valid_spans.append(span)

    if result.skipped_count:
        logger.warning(f"Skipped {result.skipped_count} empty or malformed spans")

    if not valid_spans:
        return result

    # sorted() is stable, ties keep input order
    sorted_spans = sorted(valid_spans, key=lambda s: s.start)
    result.merged_input_count = len(sorted_spans)

    first = sorted_spans[0]
    current = MergedPeriod(first.start, first.end, [first.source if first.source is not None else first])

    for span in sorted_spans[1:]:
        source = span.source if span.source is not None else span
        if span.start <= current.end:
            current.end = max(current.end, span.end)
            current.source_sessions.append(source)
        else:
            result.periods.append(current)
            current = MergedPeriod(span.start, span.end, [source])

    result.periods.append(current)

    logger.debug(
        f"Merged {result.merged_input_count} spans into {len(result.periods)} periods "
        f"({result.duplicates_eliminated} duplicates eliminated)"
    )

    return result


def merge_periods(spans: Iterable[Any]) -> List[MergedPeriod]:
    """Merge spans and return only the periods."""
    return merge_spans(spans).periods
