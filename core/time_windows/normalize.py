"""
Timestamp Normalization

Single ingestion point turning heterogeneous timestamp representations
into canonical instants (naive datetimes in the business timezone), and
raw session records into Session objects.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable, List, Mapping, Optional

import pandas as pd
import pytz
from dateutil import parser as dateutil_parser

from .models import Session

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Copenhagen"

# Accepted spellings for each session field (camelCase from the logging app,
# snake_case from exports)
_FIELD_ALIASES = {
    'id': ('id', 'session_id', 'sessionId'),
    'task_id': ('task_id', 'taskId'),
    'start_time': ('start_time', 'startTime'),
    'end_time': ('end_time', 'endTime'),
    'time_spent_minutes': ('time_spent_minutes', 'timeSpentMinutes', 'timeSpent', 'time_spent'),
    'quantity': ('quantity',),
}


def _localize(dt: datetime, timezone: str) -> datetime:
    """Convert an aware datetime to the business timezone and drop tzinfo."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.timezone(timezone)).replace(tzinfo=None)


def _from_epoch_seconds(seconds: float, timezone: str) -> Optional[datetime]:
    if not math.isfinite(seconds):
        return None
    try:
        utc_dt = datetime.fromtimestamp(seconds, tz=pytz.UTC)
    except (OverflowError, OSError, ValueError):
        return None
    return _localize(utc_dt, timezone)


def to_instant(value: Any, timezone: str = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """
    Convert a timestamp of any supported representation to a canonical instant.

    Supported inputs:
    - datetime / pandas.Timestamp (aware values converted to `timezone`)
    - date (interpreted as midnight)
    - ISO 8601 strings (with or without offset / 'Z' suffix)
    - int/float epoch milliseconds
    - Firestore-style mappings {'seconds': ..., 'nanoseconds': ...}
    - objects exposing to_datetime() (e.g. Firestore Timestamp)

    Args:
        value: Raw timestamp value
        timezone: Business timezone name

    Returns:
        Naive datetime, or None if the value is missing or unparsable
    """
    if value is None or value is pd.NaT:
        return None

    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return None
        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()
        return _localize(value, timezone)

    if isinstance(value, date):
        return datetime.combine(value, time.min)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_epoch_seconds(value / 1000.0, timezone)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = dateutil_parser.isoparse(text)
        except (ValueError, OverflowError):
            try:
                parsed = dateutil_parser.parse(text)
            except (ValueError, OverflowError):
                return None
        return _localize(parsed, timezone)

    if isinstance(value, Mapping):
        seconds = value.get('seconds', value.get('_seconds'))
        if seconds is None:
            return None
        nanos = value.get('nanoseconds', value.get('_nanoseconds', 0)) or 0
        try:
            return _from_epoch_seconds(float(seconds) + float(nanos) / 1e9, timezone)
        except (TypeError, ValueError):
            return None

    to_datetime = getattr(value, 'to_datetime', None)
    if callable(to_datetime):
        try:
            return to_instant(to_datetime(), timezone)
        except (TypeError, ValueError):
            return None

    return None


def _pick(record: Mapping, field_name: str, default: Any = None) -> Any:
    for key in _FIELD_ALIASES[field_name]:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _to_number(value: Any) -> float:
    """Parse a numeric field, treating missing/invalid values as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def normalize_session(
    record: Any,
    timezone: str = DEFAULT_TIMEZONE,
    index: int = 0,
) -> Optional[Session]:
    """
    Convert one raw session record into a Session.

    Args:
        record: Session instance or mapping with camelCase/snake_case keys
        timezone: Business timezone name
        index: Position of the record, used to build an id when none is given

    Returns:
        Session, or None if the record is malformed (missing timestamps,
        unparsable dates, or start >= end)
    """
    if isinstance(record, Session):
        return record

    if not isinstance(record, Mapping):
        logger.warning(f"Skipping session #{index}: unsupported record type {type(record).__name__}")
        return None

    start_time = to_instant(_pick(record, 'start_time'), timezone)
    end_time = to_instant(_pick(record, 'end_time'), timezone)
    session_id = str(_pick(record, 'id', f"session-{index}"))

    if start_time is None or end_time is None:
        logger.warning(f"Skipping session {session_id}: missing or unparsable timestamps")
        return None

    task_id = _pick(record, 'task_id')

    try:
        return Session(
            id=session_id,
            start_time=start_time,
            end_time=end_time,
            time_spent_minutes=_to_number(_pick(record, 'time_spent_minutes', 0)),
            quantity=_to_number(_pick(record, 'quantity', 0)),
            task_id=str(task_id) if task_id is not None else None,
        )
    except ValueError as e:
        logger.warning(f"Skipping session {session_id}: {e}")
        return None


@dataclass
class NormalizedSessions:
    """Result of normalizing a batch of raw session records."""
    sessions: List[Session] = field(default_factory=list)
    skipped_sessions: int = 0

    def __iter__(self):
        return iter(self.sessions)

    def __len__(self) -> int:
        return len(self.sessions)


def normalize_sessions(
    records: Optional[Iterable[Any]],
    timezone: str = DEFAULT_TIMEZONE,
) -> NormalizedSessions:
    """
    Normalize a batch of raw session records.

    Malformed records are skipped and counted, never raised.

    Args:
        records: Iterable of Session objects or raw mappings
        timezone: Business timezone name

    Returns:
        NormalizedSessions with the valid sessions and the skipped count
    """
    result = NormalizedSessions()
    if not records:
        return result

    for index, record in enumerate(records):
        session = normalize_session(record, timezone, index)
        if session is None:
            result.skipped_sessions += 1
        else:
            result.sessions.append(session)

    if result.skipped_sessions:
        logger.warning(
            f"Normalized {len(result.sessions)} sessions, "
            f"skipped {result.skipped_sessions} malformed records"
        )

    return result
