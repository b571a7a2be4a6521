"""
Production Time Accounting - Command Line Runner

Runs the accounting engine over a JSON snapshot and prints the results as
JSON. The snapshot holds the raw records fetched by the data-access layer:

    {
        "sessions": [{"id": ..., "taskId": ..., "startTime": ..., "endTime": ...,
                      "timeSpent": ..., "quantity": ...}, ...],
        "costs": [{"id": ..., "startDate": ..., "endDate": ..., "amount": ...,
                   "excludedTaskIds": [...]}, ...],
        "tasks": {"<task id>": {"moNumber": ..., "name": ..., "productName": ...}}
    }

Subcommands:
- gaps: production gaps against the working calendar
- costs: cost per effective minute for every cost record
- weekly: weekly productivity series, trends and insights
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from dateutil import parser as dateutil_parser

from config import Config
from utils.config import get_app_config, get_work_schedule_config, load_config, validate_config
from core.analysis.gaps import analyze_production_gaps
from core.calculations.costs import (
    allocate_cost_to_tasks,
    cost_per_minute_for_range,
    summarize_allocation,
)
from core.calculations.productivity import (
    analyze_weekly_trends,
    generate_weekly_insights,
    prepare_weekly_data,
)
from core.calculations.time_analysis import analyze_production_time
from core.costs.service import CostService
from core.time_windows.normalize import normalize_sessions
from core.time_windows.work_calendar import end_of_day

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def load_snapshot(path: str) -> Dict[str, Any]:
    """
    Load a JSON snapshot of sessions, costs and tasks.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a JSON object
    """
    snapshot_path = Path(path)
    if not snapshot_path.exists():
        raise FileNotFoundError(f"Snapshot not found: {snapshot_path}")

    with snapshot_path.open(encoding='utf-8') as handle:
        data = json.load(handle)

    if not isinstance(data, dict):
        raise ValueError(f"Snapshot {snapshot_path} must contain a JSON object")

    logger.info(
        f"Loaded snapshot {snapshot_path}: {len(data.get('sessions') or [])} sessions, "
        f"{len(data.get('costs') or [])} costs, {len(data.get('tasks') or {})} tasks"
    )
    return data


def _cost_payload(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map a camelCase cost record onto CostService.create() fields."""
    return {
        'id': raw.get('id'),
        'start_date': raw.get('startDate', raw.get('start_date')),
        'end_date': raw.get('endDate', raw.get('end_date')),
        'amount': raw.get('amount'),
        'excluded_task_ids': raw.get('excludedTaskIds', raw.get('excluded_task_ids')) or [],
        'is_paid': raw.get('isPaid', raw.get('is_paid', True)),
        'description': raw.get('description', ''),
    }


def _parse_instant(value: str) -> datetime:
    return dateutil_parser.isoparse(value)


def run_gaps(args: argparse.Namespace, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    report = analyze_production_gaps(
        snapshot.get('sessions') or [],
        start_date=args.start,
        end_date=args.end,
        work_start_hour=args.work_start_hour,
        work_end_hour=args.work_end_hour,
        include_weekends=args.include_weekends,
        min_gap_minutes=args.min_gap_minutes,
        now=args.now,
        task_lookup=snapshot.get('tasks') or {},
        timezone=args.timezone,
    )
    return report.to_dict()


def run_costs(args: argparse.Namespace, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    raw_sessions = snapshot.get('sessions') or []
    service = CostService(lambda start, end: raw_sessions, timezone=args.timezone)

    for raw in snapshot.get('costs') or []:
        service.create(_cost_payload(raw))

    service.recalculate_all(max_workers=args.max_workers)

    sessions = normalize_sessions(raw_sessions, args.timezone).sessions
    records: List[Dict[str, Any]] = []
    for record, analysis in service.list():
        entry = {'record': record.to_dict(), 'analysis': analysis.to_dict()}
        if args.allocate:
            allocation = allocate_cost_to_tasks(
                analysis.cost_per_minute,
                sessions,
                record.start_date,
                record.end_date,
                excluded_task_ids=record.excluded_task_ids,
            )
            entry['allocation'] = summarize_allocation(allocation)
        records.append(entry)

    result: Dict[str, Any] = {'costs': records, 'stats': service.get_stats()}

    if args.report_from and args.report_to:
        report_to = end_of_day(args.report_to)
        report_from = datetime.combine(args.report_from, datetime.min.time())
        result['range'] = cost_per_minute_for_range(
            [record for record, _ in service.list()], sessions, report_from, report_to
        )

    return result


def run_weekly(args: argparse.Namespace, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    sessions = snapshot.get('sessions') or []
    tasks = snapshot.get('tasks') or {}

    weeks = prepare_weekly_data(
        sessions,
        task_lookup=tasks,
        standard_work_week_hours=args.standard_hours,
        timezone=args.timezone,
    )
    trends = analyze_weekly_trends(weeks)
    for key in ('best_week', 'worst_week'):
        if trends[key] is not None:
            trends[key] = trends[key].week

    return {
        'weeks': [week.to_dict() for week in weeks],
        'trends': trends,
        'insights': generate_weekly_insights(weeks),
        'timeAnalysis': analyze_production_time(sessions, tasks, args.timezone).to_dict(),
    }


def build_parser(schedule: Dict[str, Any], settings: Dict[str, Any]) -> argparse.ArgumentParser:
    """
    Build the CLI parser with defaults taken from the loaded configuration.

    Args:
        schedule: Result of get_work_schedule_config()
        settings: Result of get_app_config()
    """
    parser = argparse.ArgumentParser(
        description="Duplicate-free production time, gap and cost accounting."
    )
    parser.add_argument("--env", help="Path to a .env file (default: ./.env)")
    parser.add_argument("--timezone", default=settings["timezone"], help="Business timezone")
    subparsers = parser.add_subparsers(dest="command", required=True)

    gaps = subparsers.add_parser("gaps", help="Analyse production gaps")
    gaps.add_argument("input", help="JSON snapshot with sessions and tasks")
    gaps.add_argument("--start", type=date.fromisoformat, required=True, help="First day (YYYY-MM-DD)")
    gaps.add_argument("--end", type=date.fromisoformat, required=True, help="Last day (YYYY-MM-DD)")
    gaps.add_argument("--work-start-hour", type=int, default=schedule["work_start_hour"])
    gaps.add_argument("--work-end-hour", type=int, default=schedule["work_end_hour"])
    gaps.add_argument(
        "--include-weekends", action=argparse.BooleanOptionalAction,
        default=schedule["include_weekends"],
        help="Analyse Saturdays and Sundays too"
    )
    gaps.add_argument("--min-gap-minutes", type=float, default=schedule["min_gap_minutes"])
    gaps.add_argument("--now", type=_parse_instant, help="Reference time instead of the current time")
    gaps.set_defaults(handler=run_gaps)

    costs = subparsers.add_parser("costs", help="Recalculate facility costs per effective minute")
    costs.add_argument("input", help="JSON snapshot with sessions and costs")
    costs.add_argument("--max-workers", type=int, default=settings["recalc_max_workers"])
    costs.add_argument("--allocate", action="store_true", help="Attribute each cost to tasks")
    costs.add_argument("--report-from", type=date.fromisoformat, help="Reporting window start")
    costs.add_argument("--report-to", type=date.fromisoformat, help="Reporting window end")
    costs.set_defaults(handler=run_costs)

    weekly = subparsers.add_parser("weekly", help="Weekly productivity and trends")
    weekly.add_argument("input", help="JSON snapshot with sessions and tasks")
    weekly.add_argument("--standard-hours", type=float, default=settings["standard_work_week_hours"])
    weekly.set_defaults(handler=run_weekly)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    # --env must be loaded before the parser reads its defaults
    env_parser = argparse.ArgumentParser(add_help=False)
    env_parser.add_argument("--env")
    env_args, _ = env_parser.parse_known_args(argv)
    if env_args.env:
        if not load_config(env_args.env, override=True):
            logger.warning(f"No settings loaded from {env_args.env}")

    problems = validate_config()
    if problems:
        for problem in problems:
            logger.error(f"Configuration problem: {problem}")
        return 2

    args = build_parser(get_work_schedule_config(), get_app_config()).parse_args(argv)

    try:
        snapshot = load_snapshot(args.input)
        result = args.handler(args, snapshot)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
