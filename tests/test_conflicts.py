# tests/test_conflicts.py
from datetime import date

from study_planner.conflicts import check_day, detect_conflicts, overload_percentage
from study_planner.models import DaySlot

MONDAY = date(2025, 3, 3)


def test_overload_percentage():
    assert overload_percentage(90, 60) == 50
    assert overload_percentage(70, 60) == 17
    assert overload_percentage(30, 0) == 100


def test_detect_conflicts_reports_only_overloaded_days():
    slots = [
        DaySlot(date=MONDAY, total_capacity_minutes=60, used_minutes=60),
        DaySlot(date=date(2025, 3, 4), total_capacity_minutes=60, used_minutes=90),
        DaySlot(date=date(2025, 3, 5), total_capacity_minutes=0, used_minutes=20),
    ]
    conflicts = detect_conflicts(slots)
    assert [c.date for c in conflicts] == [date(2025, 3, 4), date(2025, 3, 5)]
    assert conflicts[0].required_minutes == 90
    assert conflicts[0].available_minutes == 60
    assert conflicts[0].overload_percentage == 50
    assert conflicts[1].overload_percentage == 100
    assert slots[1].used_minutes == 90


def test_check_day_within_capacity():
    info = check_day(180, 60, 60)
    assert not info.has_conflict
    assert info.remaining_hours == 2
    assert info.overload_hours == 0
    assert info.suggested_availability == 2


def test_check_day_overload():
    info = check_day(120, 90, 60)
    assert info.has_conflict
    assert info.total_after_schedule == 2.5
    assert info.overload_hours == 0.5
    assert info.suggested_availability == 3


def test_check_day_exactly_full_is_not_a_conflict():
    assert not check_day(120, 60, 60).has_conflict
