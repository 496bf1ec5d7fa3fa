import pytest

from study_planner.capacity import DailyHoursRule
from study_planner.db import init_db


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_planner.db")
    return db_path


@pytest.fixture
def db(tmp_db):
    """A temporary database with the schema created."""
    init_db(tmp_db)
    return tmp_db


@pytest.fixture
def every_day_5h():
    return DailyHoursRule.every_day(5)
