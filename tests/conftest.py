import itertools
import os
import sys
from datetime import date

import pytest

# modules live in the project root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from habit_store import HabitStore
from local_storage import MemoryStorage


class FakeClock:
    """Settable stand-in for date.today()."""

    def __init__(self, today: date):
        self.current = today

    def __call__(self) -> date:
        return self.current


@pytest.fixture
def clock():
    return FakeClock(date(2025, 3, 10))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"h{next(counter)}"


@pytest.fixture
def store(storage, clock, id_factory):
    return HabitStore(storage, clock=clock, id_factory=id_factory)
