from datetime import datetime
from itertools import count

import pytest

from core.time_windows.models import Session

# Far enough in the future that no test range is clamped to "now"
FIXED_NOW = datetime(2030, 1, 1, 12, 0)

_ids = count(1)


def at(day: int, hour: int, minute: int = 0, month: int = 1, year: int = 2024) -> datetime:
    return datetime(year, month, day, hour, minute)


def make_session(
    start: datetime,
    end: datetime,
    task_id=None,
    time_spent=None,
    quantity=0.0,
    session_id=None,
) -> Session:
    """Session whose logged time defaults to its wall-clock span."""
    if time_spent is None:
        time_spent = (end - start).total_seconds() / 60.0
    return Session(
        id=session_id or f"s{next(_ids)}",
        start_time=start,
        end_time=end,
        time_spent_minutes=time_spent,
        quantity=quantity,
        task_id=task_id,
    )


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def tasks():
    return {
        "t1": {"moNumber": "MO-001", "name": "Protein bar", "productName": "Bar 50g"},
        "t2": {"moNumber": "", "name": "Granola", "productName": "Granola 500g"},
        "t3": {"productName": "Muesli"},
    }
