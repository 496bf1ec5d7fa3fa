"""Day overload detection."""
import math

from study_planner.feasibility import round_half_up
from study_planner.models import ConflictInfo, DayConflict, DaySlot


def overload_percentage(used_minutes: int, capacity_minutes: int) -> int:
    if capacity_minutes <= 0:
        return 100
    return round_half_up((used_minutes - capacity_minutes) / capacity_minutes * 100)


def detect_conflicts(slots: list[DaySlot]) -> list[DayConflict]:
    """Report every day whose load exceeds its capacity. Never mutates ``slots``."""
    return [
        DayConflict(
            date=slot.date,
            required_minutes=slot.used_minutes,
            available_minutes=slot.total_capacity_minutes,
            overload_percentage=overload_percentage(slot.used_minutes, slot.total_capacity_minutes),
        )
        for slot in slots
        if slot.overloaded
    ]


def check_day(capacity_minutes: int, scheduled_minutes: int, new_minutes: int) -> ConflictInfo:
    """Preview the effect of adding ``new_minutes`` to a single day."""
    available_hours = capacity_minutes / 60
    scheduled_hours = scheduled_minutes / 60
    new_item_hours = new_minutes / 60
    total_after = scheduled_hours + new_item_hours
    return ConflictInfo(
        has_conflict=total_after > available_hours,
        available_hours=available_hours,
        scheduled_hours=scheduled_hours,
        remaining_hours=available_hours - scheduled_hours,
        new_item_hours=new_item_hours,
        total_after_schedule=total_after,
        overload_hours=max(0.0, total_after - available_hours),
        suggested_availability=math.ceil(total_after),
    )
