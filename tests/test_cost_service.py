from datetime import date, datetime
from itertools import count

import pytest

from core.costs.models import CostRecordValidationError, parse_cost_bounds
from core.costs.service import CostService


def _sessions():
    # 50 hours of production in January 2024, one 5 h session per weekday
    records = []
    for day in range(1, 15):
        if date(2024, 1, day).weekday() >= 5:
            continue
        records.append({
            "id": f"jan-{day}",
            "taskId": "t1" if day % 2 else "t2",
            "startTime": f"2024-01-{day:02d}T08:00:00",
            "endTime": f"2024-01-{day:02d}T13:00:00",
            "timeSpent": 300,
        })
    return records


@pytest.fixture
def clock():
    ticks = count()
    return lambda: datetime(2024, 2, 1, 12, 0, next(ticks) % 60)


@pytest.fixture
def service(clock):
    ids = count(1)
    return CostService(lambda start, end: _sessions(), clock=clock, id_factory=lambda: f"cost-{next(ids)}")


def test_create_computes_analysis(service):
    record, analysis = service.create({
        "start_date": date(2024, 1, 1),
        "end_date": date(2024, 1, 31),
        "amount": 1000,
    })

    assert record.id == "cost-1"
    assert record.end_date == datetime(2024, 1, 31, 23, 59, 59, 999999)
    assert analysis.effective_minutes == pytest.approx(3000)
    assert round(analysis.cost_per_minute, 2) == 0.33
    assert analysis.cost_per_hour == pytest.approx(20)
    assert analysis.version == 1
    assert analysis.to_dict()['costPerMinute'] == 0.33


@pytest.mark.parametrize("data", [
    {"start_date": "2024-01-31", "end_date": "2024-01-01", "amount": 10},
    {"start_date": "2024-01-01", "end_date": None, "amount": 10},
    {"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": -1},
    {"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": "lots"},
])
def test_create_rejects_invalid_records(service, data):
    with pytest.raises(CostRecordValidationError):
        service.create(data)
    assert service.list() == []


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        parse_cost_bounds(datetime(2024, 1, 2), datetime(2024, 1, 1))


def test_update_recomputes_and_bumps_version(service):
    record, first = service.create({"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 1000})

    updated, second = service.update(record.id, amount=2000, excluded_task_ids=["t2"])

    assert updated.amount == 2000
    assert updated.created_at == record.created_at
    assert second.version == first.version + 1
    assert second.excluded_sessions_count > 0
    assert second.effective_minutes < first.effective_minutes
    assert service.cache.get(record.id) == second


def test_update_rejects_unknown_fields_and_ids(service):
    record, _ = service.create({"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 1})
    with pytest.raises(CostRecordValidationError):
        service.update(record.id, colour="blue")
    with pytest.raises(KeyError):
        service.update("missing", amount=5)


def test_delete_removes_record_and_snapshot(service):
    record, _ = service.create({"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 1})

    service.delete(record.id)

    assert service.cache.get(record.id) is None
    with pytest.raises(KeyError):
        service.get(record.id)
    with pytest.raises(KeyError):
        service.delete(record.id)


def test_list_recomputes_invalidated_snapshots(service):
    a, _ = service.create({"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 1000})
    b, _ = service.create({"start_date": "2024-01-08", "end_date": "2024-01-14", "amount": 100})

    assert service.invalidate(a.id) is True
    listed = service.list()

    assert [record.id for record, _ in listed] == [a.id, b.id]
    assert listed[0][1].version == 2
    assert listed[1][1].version == 1


def test_recalculate_all_updates_every_record(service):
    for day in (1, 8, 15):
        service.create({"start_date": f"2024-01-{day:02d}", "end_date": f"2024-01-{day + 6:02d}", "amount": 700})

    updated = service.recalculate_all(max_workers=3)

    assert updated == 3
    assert all(analysis.version == 2 for _, analysis in service.list())


def test_recalculate_all_isolates_failures(clock):
    outage = {"active": False}

    def source(start, end):
        if outage["active"] and start.day == 8:
            raise ConnectionError("database unavailable")
        return _sessions()

    service = CostService(source, clock=clock)
    first, _ = service.create({"start_date": "2024-01-01", "end_date": "2024-01-07", "amount": 10})
    second, _ = service.create({"start_date": "2024-01-08", "end_date": "2024-01-14", "amount": 10})
    outage["active"] = True

    assert service.recalculate_all() == 1
    assert service.get_stats()["errors"] == 1
    assert service.cache.get(first.id).version == 2
    assert service.cache.get(second.id).version == 1


def test_failed_create_registers_nothing(clock):
    def source(start, end):
        raise ConnectionError("database unavailable")

    service = CostService(source, clock=clock)
    with pytest.raises(ConnectionError):
        service.create({"start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 10})

    assert service.list() == []


def test_failed_update_keeps_previous_record(clock):
    outage = {"down": False}

    def source(start, end):
        if outage["down"]:
            raise ConnectionError("database unavailable")
        return _sessions()

    service = CostService(source, clock=clock)
    _, analysis = service.create({"id": "rent", "start_date": "2024-01-01", "end_date": "2024-01-31", "amount": 1000})

    outage["down"] = True
    with pytest.raises(ConnectionError):
        service.update("rent", amount=5000)

    [(listed, cached)] = service.list()
    assert listed.amount == 1000
    assert cached.record_id == "rent"
    assert cached.cost_per_minute == pytest.approx(analysis.cost_per_minute)
    assert service.get_stats()["updated"] == 0

    outage["down"] = False
    _, recalculated = service.update("rent", amount=5000)
    assert service.get("rent").amount == 5000
    assert recalculated.cost_per_minute == pytest.approx(5 * analysis.cost_per_minute)


def test_recalculate_all_without_records(service):
    assert service.recalculate_all() == 0
