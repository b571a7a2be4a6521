from datetime import date, datetime
from types import SimpleNamespace

import pytest

from core.calculations.costs import (
    allocate_cost_to_tasks,
    calculate_cost_per_minute,
    compute_effective_time,
    cost_per_minute_for_range,
    proportional_amount,
    proportional_time_per_task,
    summarize_allocation,
)
from core.time_windows.work_calendar import end_of_day

JAN_START = datetime(2024, 1, 1)
JAN_END = end_of_day(date(2024, 1, 31))


def test_cost_per_minute_for_fixed_effective_time():
    assert calculate_cost_per_minute(1000, 3000) == pytest.approx(0.3333, abs=1e-4)
    assert round(calculate_cost_per_minute(1000, 3000), 2) == 0.33


@pytest.mark.parametrize("amount,minutes", [(0, 100), (-5, 100), (100, 0), (100, -1)])
def test_cost_per_minute_guards(amount, minutes):
    assert calculate_cost_per_minute(amount, minutes) == 0.0


def test_proportional_amount_over_ten_of_thirty_one_days():
    cost = SimpleNamespace(start_date=JAN_START, end_date=JAN_END, amount=3100)

    amount = proportional_amount(cost, JAN_START, end_of_day(date(2024, 1, 10)))

    assert amount == pytest.approx(1000, rel=1e-6)


def test_proportional_amount_without_overlap_is_zero():
    cost = SimpleNamespace(start_date=JAN_START, end_date=JAN_END, amount=3100)
    assert proportional_amount(cost, datetime(2024, 3, 1), datetime(2024, 3, 31)) == 0


def test_proportional_amount_degenerate_cost_returns_full_amount():
    cost = SimpleNamespace(start_date=JAN_START, end_date=JAN_START, amount=500)
    assert proportional_amount(cost, datetime(2024, 3, 1), datetime(2024, 3, 31)) == 500


def test_effective_time_deduplicates_and_clips(session_factory):
    sessions = [
        # Crosses the range start, 60 of its minutes fall inside
        session_factory(datetime(2023, 12, 31, 23), datetime(2024, 1, 1, 1)),
        session_factory(datetime(2024, 1, 10, 9), datetime(2024, 1, 10, 10)),
        session_factory(datetime(2024, 1, 10, 9, 30), datetime(2024, 1, 10, 11)),
        # Entirely outside
        session_factory(datetime(2024, 2, 5, 9), datetime(2024, 2, 5, 10)),
    ]

    result = compute_effective_time(sessions, JAN_START, JAN_END)

    assert result.effective_minutes == pytest.approx(60 + 120)
    assert result.sessions_count == 3
    assert result.merged_periods_count == 2
    assert result.duplicates_eliminated == 1
    assert result.clipped_periods_count == 1


def test_merge_uses_unclipped_extents(session_factory):
    # Both sessions start before the range; they overlap only outside it
    sessions = [
        session_factory(datetime(2023, 12, 31, 20), datetime(2024, 1, 1, 2)),
        session_factory(datetime(2023, 12, 31, 22), datetime(2024, 1, 1, 1)),
    ]
    result = compute_effective_time(sessions, JAN_START, JAN_END)
    assert result.merged_periods_count == 1
    assert result.effective_minutes == pytest.approx(120)


def test_excluding_every_task_gives_zero(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 9), datetime(2024, 1, 10, 10), task_id="t1"),
        session_factory(datetime(2024, 1, 11, 9), datetime(2024, 1, 11, 10), task_id="t2"),
    ]

    result = compute_effective_time(sessions, JAN_START, JAN_END, excluded_task_ids=["t1", "t2"])

    assert result.effective_minutes == 0
    assert result.excluded_sessions_count == 2


def test_sessions_without_task_are_never_excluded(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 9), datetime(2024, 1, 10, 10), task_id="t1"),
        session_factory(datetime(2024, 1, 11, 9), datetime(2024, 1, 11, 10)),
    ]
    result = compute_effective_time(sessions, JAN_START, JAN_END, excluded_task_ids={"t1"})
    assert result.effective_minutes == pytest.approx(60)
    assert result.excluded_sessions_count == 1


def test_effective_time_is_idempotent(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, d, 8), datetime(2024, 1, d, 15, 17))
        for d in range(2, 20)
    ]
    first = compute_effective_time(sessions, JAN_START, JAN_END)
    second = compute_effective_time(sessions, JAN_START, JAN_END)
    assert first == second


def test_degenerate_range_returns_zeros(session_factory):
    session = session_factory(datetime(2024, 1, 10, 9), datetime(2024, 1, 10, 10))
    result = compute_effective_time([session], JAN_END, JAN_START)
    assert result.effective_minutes == 0
    assert result.sessions_count == 0


def test_facility_cost_per_minute_for_range(session_factory):
    costs = [
        SimpleNamespace(id="rent", start_date=JAN_START, end_date=JAN_END, amount=3100),
        SimpleNamespace(id="later", start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 31), amount=999),
    ]
    sessions = [session_factory(datetime(2024, 1, 2, 8), datetime(2024, 1, 2, 18))]

    result = cost_per_minute_for_range(costs, sessions, JAN_START, end_of_day(date(2024, 1, 10)))

    assert result['costs_count'] == 1
    assert result['total_cost'] == pytest.approx(1000, rel=1e-6)
    assert result['effective_minutes'] == pytest.approx(600)
    assert result['cost_per_minute'] == pytest.approx(1000 / 600, rel=1e-6)


def test_concurrent_tasks_split_time(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 10), datetime(2024, 1, 10, 16), task_id="A"),
        session_factory(datetime(2024, 1, 10, 12), datetime(2024, 1, 10, 18), task_id="B"),
    ]

    shares = proportional_time_per_task(sessions, JAN_START, JAN_END)

    # A: 120 alone + 240/2 shared, B: 240/2 shared + 120 alone
    assert shares["A"]["proportional_minutes"] == pytest.approx(240)
    assert shares["B"]["proportional_minutes"] == pytest.approx(240)


def test_allocate_cost_to_tasks(session_factory):
    sessions = [
        session_factory(datetime(2024, 1, 10, 8), datetime(2024, 1, 10, 10), task_id="A"),
        session_factory(datetime(2024, 1, 11, 8), datetime(2024, 1, 11, 9), task_id="B"),
        session_factory(datetime(2024, 1, 12, 8), datetime(2024, 1, 12, 9), task_id="X"),
    ]

    allocation = allocate_cost_to_tasks(
        2.0, sessions, JAN_START, JAN_END,
        excluded_task_ids=["X"], task_quantities={"A": 40},
    )

    assert set(allocation) == {"A", "B"}
    assert allocation["A"]["cost_total"] == pytest.approx(240)
    assert allocation["A"]["cost_per_unit"] == pytest.approx(6)
    assert allocation["B"]["cost_per_unit"] == pytest.approx(120)
    assert [entry["task_id"] for entry in summarize_allocation(allocation)] == ["A", "B"]


def test_allocation_without_cost_is_empty(session_factory):
    session = session_factory(datetime(2024, 1, 10, 8), datetime(2024, 1, 10, 10), task_id="A")
    assert allocate_cost_to_tasks(0, [session], JAN_START, JAN_END) == {}
