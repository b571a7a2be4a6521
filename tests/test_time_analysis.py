from datetime import datetime

import pytest

from core.calculations.time_analysis import (
    analyze_production_time,
    iso_week_key,
    sessions_to_frame,
    summarize_by,
)


@pytest.mark.parametrize("dt,expected", [
    (datetime(2024, 1, 10), "2024-W02"),
    (datetime(2024, 12, 30), "2025-W01"),
    (datetime(2021, 1, 3), "2020-W53"),
])
def test_iso_week_key(dt, expected):
    assert iso_week_key(dt) == expected


def test_empty_input():
    analysis = analyze_production_time([])
    assert analysis.total_sessions == 0
    assert analysis.total_minutes == 0
    assert analysis.by_week.empty
    assert analysis.to_dict()['byDay'] == []


def test_totals_and_groupings(session_factory, tasks):
    sessions = [
        session_factory(datetime(2024, 1, 10, 8), datetime(2024, 1, 10, 10), task_id="t1", quantity=100),
        session_factory(datetime(2024, 1, 10, 12), datetime(2024, 1, 10, 13), task_id="t2", quantity=20),
        session_factory(datetime(2024, 2, 1, 8), datetime(2024, 2, 1, 9), task_id="t1", quantity=40),
    ]

    analysis = analyze_production_time(sessions, tasks)

    assert analysis.total_sessions == 3
    assert analysis.total_minutes == 240
    assert analysis.total_quantity == 160
    assert analysis.average_minutes_per_session == 80
    assert analysis.average_minutes_per_unit == pytest.approx(1.5)

    by_task = analysis.by_task.set_index('task_key')
    assert by_task.loc['MO-001', 'total_minutes'] == 180
    assert by_task.loc['Granola', 'sessions_count'] == 1

    assert list(analysis.by_day['day_key']) == ['2024-01-10', '2024-02-01']
    assert list(analysis.by_month['total_minutes']) == [180, 60]
    assert list(analysis.by_week['week_key']) == ['2024-W02', '2024-W05']


def test_frame_columns(session_factory):
    frame = sessions_to_frame([session_factory(datetime(2024, 1, 13, 8), datetime(2024, 1, 13, 9))])
    row = frame.iloc[0]
    assert row['weekday'] == 5
    assert row['month_key'] == '2024-01'
    assert row['task_key'] == 'Unknown'


def test_summarize_empty_frame_keeps_columns():
    summary = summarize_by(sessions_to_frame([]), 'day_key')
    assert list(summary.columns) == ['day_key', 'total_minutes', 'total_quantity', 'sessions_count']
