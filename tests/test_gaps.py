from datetime import date, datetime

import pytest

from core.analysis.gap_models import GapKind
from core.analysis.gaps import analyze_production_gaps, round_half_up


def analyze(sessions, start=date(2024, 1, 10), end=date(2024, 1, 10), **kwargs):
    kwargs.setdefault('now', datetime(2030, 1, 1))
    return analyze_production_gaps(sessions, start, end, **kwargs)


def test_single_session_gaps_and_coverage(session_factory):
    session = session_factory(datetime(2024, 1, 10, 10), datetime(2024, 1, 10, 11))

    report = analyze([session])

    kinds = [(g.kind, g.start.hour, g.end.hour, g.minutes) for g in report.gaps]
    assert kinds == [
        (GapKind.BEFORE_FIRST, 6, 10, 240),
        (GapKind.AFTER_LAST, 11, 22, 660),
    ]
    day = report.daily_analysis['2024-01-10']
    assert day.coverage == 6
    assert day.total_work_minutes == 960
    assert day.production_minutes == 60
    assert report.summary.overall_coverage == 6.25


def test_day_without_sessions_is_one_full_day_gap():
    report = analyze([], min_gap_minutes=10000)

    assert len(report.gaps) == 1
    gap = report.gaps[0]
    assert gap.kind == GapKind.FULL_DAY
    assert gap.minutes == 960
    assert gap.start == datetime(2024, 1, 10, 6)
    assert gap.end == datetime(2024, 1, 10, 22)
    assert report.summary.days_without_production == 1
    assert report.daily_analysis['2024-01-10'].coverage == 0


def test_between_gap_and_minimum_length(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 6, 0), datetime(2024, 1, 10, 10, 0)),
        session_factory(datetime(2024, 1, 10, 10, 20), datetime(2024, 1, 10, 14, 0)),
        session_factory(datetime(2024, 1, 10, 16, 0), datetime(2024, 1, 10, 22, 0)),
    ]

    report = analyze(sessions, min_gap_minutes=30)

    assert [(g.kind, g.minutes) for g in report.gaps] == [(GapKind.BETWEEN, 120)]
    assert len(report.gaps[0].adjacent_periods) == 2


def test_overlapping_sessions_do_not_create_gaps(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 6), datetime(2024, 1, 10, 14)),
        session_factory(datetime(2024, 1, 10, 13), datetime(2024, 1, 10, 22)),
    ]
    report = analyze(sessions)
    assert report.gaps == []
    assert report.daily_analysis['2024-01-10'].merged_periods_count == 1


def test_session_past_midnight_belongs_to_its_start_day(session_factory):
    session = session_factory(datetime(2024, 1, 10, 21), datetime(2024, 1, 11, 2))

    report = analyze([session], end=date(2024, 1, 11))

    assert report.daily_analysis['2024-01-10'].sessions_count == 1
    assert report.daily_analysis['2024-01-11'].sessions_count == 0
    assert [g.kind for g in report.gaps] == [GapKind.BEFORE_FIRST, GapKind.FULL_DAY]


def test_logged_time_drives_coverage(session_factory):
    # Logged time differs from the wall-clock span
    session = session_factory(
        datetime(2024, 1, 10, 6), datetime(2024, 1, 10, 14), time_spent=240
    )
    report = analyze([session])
    assert report.daily_analysis['2024-01-10'].coverage == 25


def test_weekends_skipped_and_range_clamped(session_factory):
    # 2024-01-12 is a Friday
    report = analyze(
        [], start=date(2024, 1, 12), end=date(2024, 1, 20), now=datetime(2024, 1, 15, 9)
    )
    assert list(report.daily_analysis) == ['2024-01-12', '2024-01-15']
    assert report.period['effective_end_date'] == date(2024, 1, 15)
    assert report.summary.days_analyzed == 2


def test_raw_records_are_normalized_and_counted():
    records = [
        {"id": "a", "startTime": "2024-01-10T08:00:00", "endTime": "2024-01-10T20:00:00", "timeSpent": 720},
        {"id": "b", "startTime": "2024-01-10T09:00:00"},
    ]
    report = analyze(records)
    assert report.summary.sessions_count == 1
    assert report.summary.skipped_sessions == 1


def test_adjacent_tasks_are_resolved(session_factory, tasks):
    sessions = [
        session_factory(datetime(2024, 1, 10, 6), datetime(2024, 1, 10, 9), task_id="t1"),
        session_factory(datetime(2024, 1, 10, 12), datetime(2024, 1, 10, 22), task_id="t2"),
    ]

    report = analyze(sessions, task_lookup=tasks)

    gap = report.gaps[0]
    assert gap.kind == GapKind.BETWEEN
    assert gap.previous_task['moNumber'] == "MO-001"
    assert gap.next_task['name'] == "Granola"


def test_failing_task_lookup_degrades_to_unknown(session_factory):
    def broken_lookup(task_id):
        raise RuntimeError("lookup service down")

    session = session_factory(datetime(2024, 1, 10, 10), datetime(2024, 1, 10, 11), task_id="t1")

    report = analyze([session], task_lookup=broken_lookup)

    assert report.gaps[0].next_task['unknown'] is True
    assert report.gaps[0].minutes == 240


def test_summary_totals(session_factory):
    sessions = [session_factory(datetime(2024, 1, 10, 10), datetime(2024, 1, 10, 11))]

    report = analyze(sessions, end=date(2024, 1, 11))
    summary = report.summary

    assert summary.total_work_minutes == 1920
    assert summary.total_production_minutes == 60
    assert summary.total_gap_minutes == 240 + 660 + 960
    assert summary.gaps_count == 3
    assert summary.days_with_gaps == 2
    assert summary.days_without_production == 1


def test_report_to_dict_uses_gap_type_names(session_factory):
    session = session_factory(datetime(2024, 1, 10, 10), datetime(2024, 1, 10, 11))
    data = analyze([session]).to_dict()
    assert [g['type'] for g in data['gaps']] == ['before_first', 'after_last']
    assert data['summary']['gapsCount'] == 2


@pytest.mark.parametrize("value,expected", [(6.25, 6), (12.5, 13), (49.5, 50), (0.4, 0)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def assert_gaps_fill_window(report, day_key='2024-01-10'):
    day = report.daily_analysis[day_key]
    for gap in day.gaps:
        assert day.work_start <= gap.start < gap.end <= day.work_end
        assert gap.minutes > 0
    covered = sum(p.clipped_minutes(day.work_start, day.work_end) for p in day.merged_periods)
    assert day.gap_minutes + covered == pytest.approx(day.total_work_minutes)


@pytest.mark.parametrize("spans,expected", [
    # Straddles work start
    ([((5, 0), (7, 0)), ((10, 0), (11, 0))],
     [(GapKind.BETWEEN, 180), (GapKind.AFTER_LAST, 660)]),
    # Straddles work end
    ([((21, 0), (23, 0))],
     [(GapKind.BEFORE_FIRST, 900)]),
    # Entirely before the window, then entirely after it
    ([((3, 0), (4, 0)), ((22, 30), (23, 0))],
     [(GapKind.BETWEEN, 960)]),
    # Only after the window
    ([((22, 30), (23, 30))],
     [(GapKind.BEFORE_FIRST, 960)]),
    # Only before the window
    ([((4, 0), (5, 0))],
     [(GapKind.AFTER_LAST, 960)]),
])
def test_gaps_are_clipped_to_the_work_window(session_factory, spans, expected):
    sessions = [
        session_factory(datetime(2024, 1, 10, *start), datetime(2024, 1, 10, *end))
        for start, end in spans
    ]

    report = analyze(sessions, min_gap_minutes=0)

    assert [(g.kind, g.minutes) for g in report.gaps] == expected
    assert_gaps_fill_window(report)


def test_periods_outside_window_leave_no_gap_between_them(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 2), datetime(2024, 1, 10, 3)),
        session_factory(datetime(2024, 1, 10, 4), datetime(2024, 1, 10, 7)),
        session_factory(datetime(2024, 1, 10, 8), datetime(2024, 1, 10, 22)),
    ]

    report = analyze(sessions, min_gap_minutes=0)

    # 03:00-04:00 lies before work start and is not reported
    assert [(g.kind, g.start.hour, g.minutes) for g in report.gaps] == [(GapKind.BETWEEN, 7, 60)]
    assert_gaps_fill_window(report)
