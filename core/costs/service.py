"""
Facility Cost Service

CRUD surface for cost records with explicit, versioned analysis snapshots.

Every create/update recomputes the record's CostAnalysis from the sessions
supplied by the data-access layer. recalculate_all() refreshes every
snapshot: sessions are fetched first, then the per-record calculations run
concurrently since they share no state.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from core.time_windows.models import Session
from core.time_windows.normalize import DEFAULT_TIMEZONE, normalize_sessions

from .models import (
    CostAnalysis,
    CostRecord,
    CostRecordValidationError,
    build_cost_analysis,
    parse_amount,
    parse_cost_bounds,
)

logger = logging.getLogger(__name__)

SessionSource = Callable[[datetime, datetime], Iterable[Any]]

UPDATABLE_FIELDS = ('start_date', 'end_date', 'amount', 'excluded_task_ids', 'is_paid', 'description')


class CostAnalysisCache:
    """Thread-safe store of the latest analysis snapshot per cost record."""

    def __init__(self):
        self._snapshots: Dict[str, CostAnalysis] = {}
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()

    def next_version(self, record_id: str) -> int:
        """Reserve the next snapshot version for a record"""
        with self._lock:
            version = self._versions.get(record_id, 0) + 1
            self._versions[record_id] = version
            return version

    def store(self, analysis: CostAnalysis) -> bool:
        """
        Store a snapshot unless a newer version is already cached.

        Returns:
            bool: True if the snapshot was stored
        """
        with self._lock:
            current = self._snapshots.get(analysis.record_id)
            if current is not None and current.version > analysis.version:
                return False
            self._snapshots[analysis.record_id] = analysis
            return True

    def get(self, record_id: str) -> Optional[CostAnalysis]:
        with self._lock:
            return self._snapshots.get(record_id)

    def invalidate(self, record_id: str) -> bool:
        """Drop the cached snapshot, keeping the version counter"""
        with self._lock:
            return self._snapshots.pop(record_id, None) is not None

    def discard(self, record_id: str):
        """Forget everything about a deleted record"""
        with self._lock:
            self._snapshots.pop(record_id, None)
            self._versions.pop(record_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)


class CostService:
    """In-memory cost record registry with analysis snapshots."""

    def __init__(
        self,
        session_source: SessionSource,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex
    ):
        """
        Initialize the cost service.

        Args:
            session_source: Callable(range_start, range_end) returning every raw
                session overlapping the range (the data-access layer)
            timezone: Business timezone used to normalize sessions and dates
            clock: Source of the last_calculated_at timestamp
            id_factory: Generator of new record ids
        """
        self._session_source = session_source
        self._timezone = timezone
        self._clock = clock
        self._id_factory = id_factory
        self._records: Dict[str, CostRecord] = {}
        self._lock = threading.Lock()
        self.cache = CostAnalysisCache()
        self.stats = {
            "created": 0,
            "updated": 0,
            "deleted": 0,
            "recalculated": 0,
            "errors": 0
        }

    # ------------------------------------------------------------------
    # Calculation helpers
    # ------------------------------------------------------------------

    def _fetch_sessions(self, record: CostRecord) -> List[Session]:
        raw = self._session_source(record.start_date, record.end_date)
        return normalize_sessions(raw, self._timezone).sessions

    def _analyze(self, record: CostRecord, sessions: Iterable[Session]) -> CostAnalysis:
        return build_cost_analysis(
            record,
            sessions,
            version=self.cache.next_version(record.id),
            calculated_at=self._clock(),
        )

    def _recompute(self, record: CostRecord) -> CostAnalysis:
        analysis = self._analyze(record, self._fetch_sessions(record))
        self.cache.store(analysis)
        with self._lock:
            self.stats["recalculated"] += 1
        return analysis

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> Tuple[CostRecord, CostAnalysis]:
        """
        Create a cost record and compute its analysis.

        Args:
            data: Mapping with start_date, end_date, amount and optionally
                excluded_task_ids, is_paid (default True), description

        Returns:
            Tuple of (record, analysis)

        Raises:
            CostRecordValidationError: If the data is invalid
        """
        start, end = parse_cost_bounds(data.get('start_date'), data.get('end_date'), self._timezone)
        now = self._clock()
        record = CostRecord(
            id=str(data.get('id') or self._id_factory()),
            start_date=start,
            end_date=end,
            amount=parse_amount(data.get('amount')),
            excluded_task_ids=frozenset(data.get('excluded_task_ids') or ()),
            is_paid=bool(data.get('is_paid', True)),
            description=str(data.get('description') or ''),
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            if record.id in self._records:
                raise CostRecordValidationError(f"Cost record {record.id} already exists")

        # Nothing is registered if fetching or computing fails
        analysis = self._analyze(record, self._fetch_sessions(record))

        with self._lock:
            if record.id in self._records:
                raise CostRecordValidationError(f"Cost record {record.id} already exists")
            self._records[record.id] = record
            self.stats["created"] += 1
            self.stats["recalculated"] += 1
        self.cache.store(analysis)

        logger.info(
            f"Created cost {record.id}: {record.amount} over {record.total_days:.1f} days "
            f"→ {analysis.cost_per_minute:.4f}/min "
            f"(excluded: {len(record.excluded_task_ids)} tasks)"
        )
        return record, analysis

    def update(self, record_id: str, **fields: Any) -> Tuple[CostRecord, CostAnalysis]:
        """
        Update a cost record and recompute its analysis.

        Raises:
            KeyError: If the record does not exist
            CostRecordValidationError: If a field is unknown or invalid
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise CostRecordValidationError(f"Cannot update fields: {sorted(unknown)}")

        current = self.get(record_id)
        changes: Dict[str, Any] = {}

        if 'start_date' in fields or 'end_date' in fields:
            start, end = parse_cost_bounds(
                fields.get('start_date', current.start_date),
                fields.get('end_date', current.end_date),
                self._timezone,
            )
            changes['start_date'] = start
            changes['end_date'] = end
        if 'amount' in fields:
            changes['amount'] = parse_amount(fields['amount'])
        if 'excluded_task_ids' in fields:
            changes['excluded_task_ids'] = frozenset(fields['excluded_task_ids'] or ())
        if 'is_paid' in fields:
            changes['is_paid'] = bool(fields['is_paid'])
        if 'description' in fields:
            changes['description'] = str(fields['description'] or '')

        record = replace(current, updated_at=self._clock(), **changes)

        # The previous record stays in place if fetching or computing fails
        analysis = self._analyze(record, self._fetch_sessions(record))

        with self._lock:
            if record_id not in self._records:
                raise KeyError(f"Cost record {record_id} does not exist")
            self._records[record_id] = record
            self.stats["updated"] += 1
            self.stats["recalculated"] += 1
        self.cache.store(analysis)

        logger.info(f"Updated cost {record_id} ({', '.join(sorted(changes)) or 'no changes'})")
        return record, analysis

    def delete(self, record_id: str):
        """
        Delete a cost record and its snapshot.

        Raises:
            KeyError: If the record does not exist
        """
        with self._lock:
            if record_id not in self._records:
                raise KeyError(f"Cost record {record_id} does not exist")
            del self._records[record_id]
            self.stats["deleted"] += 1
        self.cache.discard(record_id)
        logger.info(f"Deleted cost {record_id}")

    def get(self, record_id: str) -> CostRecord:
        """
        Raises:
            KeyError: If the record does not exist
        """
        with self._lock:
            try:
                return self._records[record_id]
            except KeyError:
                raise KeyError(f"Cost record {record_id} does not exist")

    def list(self) -> List[Tuple[CostRecord, CostAnalysis]]:
        """
        All records ordered by start date with their cached analysis.

        Snapshots may be stale relative to the session data; records without
        a snapshot (e.g. after invalidate) are recomputed.
        """
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: (r.start_date, r.id))

        result = []
        for record in records:
            analysis = self.cache.get(record.id)
            if analysis is None:
                logger.info(f"No cached analysis for cost {record.id}, calculating")
                analysis = self._recompute(record)
            result.append((record, analysis))
        return result

    def recalculate(self, record_id: str) -> CostAnalysis:
        """Recompute one record's snapshot"""
        return self._recompute(self.get(record_id))

    def invalidate(self, record_id: str) -> bool:
        """Drop one record's snapshot; the next list() recomputes it"""
        self.get(record_id)
        return self.cache.invalidate(record_id)

    def recalculate_all(self, max_workers: int = 4) -> int:
        """
        Recompute every record's snapshot.

        Sessions for all records are fetched up front; the calculations then
        run in a thread pool. A failing record is logged and skipped.

        Args:
            max_workers: Number of worker threads

        Returns:
            int: Number of snapshots updated
        """
        with self._lock:
            records = list(self._records.values())

        if not records:
            return 0

        logger.info(f"Recalculating {len(records)} cost records...")

        inputs = []
        for record in records:
            try:
                inputs.append((record, self._fetch_sessions(record)))
            except Exception as e:
                logger.error(f"Failed to fetch sessions for cost {record.id}: {e}", exc_info=True)
                with self._lock:
                    self.stats["errors"] += 1

        updated = 0
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            futures = {
                executor.submit(self._analyze, record, sessions): record
                for record, sessions in inputs
            }
            for future in as_completed(futures):
                record = futures[future]
                try:
                    analysis = future.result()
                except Exception as e:
                    logger.error(f"Failed to recalculate cost {record.id}: {e}", exc_info=True)
                    with self._lock:
                        self.stats["errors"] += 1
                    continue

                with self._lock:
                    still_exists = record.id in self._records
                if still_exists and self.cache.store(analysis):
                    updated += 1

        with self._lock:
            self.stats["recalculated"] += updated

        logger.info(f"Recalculated {updated}/{len(records)} cost records")
        return updated

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.stats)
