from datetime import date

import pytest

from habitgrid.engine import HabitEngine
from habitgrid.storage import HabitStorage


@pytest.fixture()
def storage(tmp_path):
    st = HabitStorage(str(tmp_path / "habits.db"))
    yield st
    st.close()


@pytest.fixture()
def make_engine(storage):
    """Engine over the tmp store with a fixed 'today' and no future padding."""
    def _make(today: date, **kwargs):
        kwargs.setdefault("days_ahead", 0)
        return HabitEngine(storage, clock=lambda: today, **kwargs)
    return _make
