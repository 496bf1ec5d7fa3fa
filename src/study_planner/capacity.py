"""Per-day study capacity and slot allocation."""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from study_planner.models import DaySlot

SATURDAY = 5
SUNDAY = 6


@dataclass
class DailyHoursRule:
    """Hours available per day: weekday/weekend defaults plus per-date overrides."""
    weekday_hours: float = 3.0
    weekend_hours: float = 5.0
    study_saturday: bool = False
    study_sunday: bool = False
    exceptions: dict = field(default_factory=dict)  # {date: hours}

    @classmethod
    def every_day(cls, hours: float) -> "DailyHoursRule":
        return cls(weekday_hours=hours, weekend_hours=hours, study_saturday=True, study_sunday=True)

    def capacity_for(self, day: date) -> Optional[int]:
        """Minutes of study capacity on ``day``, or None if the day is not studied."""
        if day in self.exceptions:
            return round(self.exceptions[day] * 60)
        weekday = day.weekday()
        if weekday == SATURDAY:
            return round(self.weekend_hours * 60) if self.study_saturday else None
        if weekday == SUNDAY:
            return round(self.weekend_hours * 60) if self.study_sunday else None
        return round(self.weekday_hours * 60)


def iter_days(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def build_calendar(start: date, end: date, rule: DailyHoursRule, commitments=()) -> list[DaySlot]:
    """Build one slot per studied day in [start, end], preloaded with commitments.

    Commitments dated on days that are not enumerated are ignored.
    """
    slots = []
    by_day = {}
    for day in iter_days(start, end):
        capacity = rule.capacity_for(day)
        if capacity is None:
            continue
        slot = DaySlot(date=day, total_capacity_minutes=capacity)
        slots.append(slot)
        by_day[day] = slot
    for commitment in commitments:
        slot = by_day.get(commitment.date)
        if slot is None:
            continue
        slot.used_minutes += commitment.minutes
        slot.commitments.append((commitment.title, commitment.minutes))
    return slots


def count_study_days(start: date, end: date, rule: DailyHoursRule) -> int:
    return sum(1 for day in iter_days(start, end) if rule.capacity_for(day) is not None)


def total_capacity(slots: list[DaySlot]) -> int:
    return sum(s.total_capacity_minutes for s in slots)


def find_slot(
    slots: list[DaySlot],
    required_minutes: int,
    preferred_date: Optional[date] = None,
    allow_over_capacity: bool = False,
) -> Optional[DaySlot]:
    """Pick a day for ``required_minutes`` of work.

    Order: the preferred day if it fits, then the first day that fits. With
    ``allow_over_capacity`` the day with the most room is returned even when it
    is too small; that mode is for previews only.
    """
    if not slots:
        return None

    if preferred_date is not None:
        for slot in slots:
            if slot.date == preferred_date and slot.fits(required_minutes):
                return slot

    for slot in slots:
        if slot.fits(required_minutes):
            return slot

    if allow_over_capacity:
        return max(slots, key=lambda s: s.available_minutes)
    return None


def consume(slot: DaySlot, minutes: int) -> None:
    if minutes < 0:
        raise ValueError("Cannot release capacity during a run")
    slot.used_minutes += minutes


def next_slot_date(slots: list[DaySlot], day: date) -> Optional[date]:
    """Date of the enumerated day following ``day``, if any."""
    for i, slot in enumerate(slots):
        if slot.date == day:
            return slots[i + 1].date if i + 1 < len(slots) else None
    return None
