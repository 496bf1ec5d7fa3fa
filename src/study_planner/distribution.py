"""Greedy distribution of study items over a capacity calendar.

Items are seated largest-first: the biggest items are the hardest to place,
so they go in while the calendar is still empty. This is a heuristic, not an
optimal packing; an item that finds no room is skipped rather than forcing
earlier placements to move.

Every item is studied in two sessions, a 60% first part and a 40% second
part that prefers the next study day.
"""
import copy
import math
from datetime import date

import structlog

from study_planner.capacity import (
    DailyHoursRule, build_calendar, consume, find_slot, next_slot_date, total_capacity,
)
from study_planner.conflicts import detect_conflicts
from study_planner.feasibility import classify, round_half_up
from study_planner.models import (
    DistributionResult, PlacementFailure, ScheduledSession, SessionType, StudyItem,
)

log = structlog.get_logger(__name__)

PART1_SHARE = 0.6
PART1_PRIORITY = 7
PART2_PRIORITY = 9


def split_minutes(total: int) -> tuple[int, int]:
    """Split into (part1, part2); the parts always add back up to ``total``."""
    part1 = round_half_up(total * PART1_SHARE)
    return part1, total - part1


def part_title(title: str, part: int) -> str:
    return f"{title} - Initial Study (Part {part})"


def _session(item: StudyItem, day: date, minutes: int, part: int) -> ScheduledSession:
    return ScheduledSession(
        item_id=item.id,
        title=part_title(item.title, part),
        date=day,
        duration_minutes=minutes,
        session_type=SessionType.INITIAL_PART_1 if part == 1 else SessionType.INITIAL_PART_2,
        revision_number=0,
        topic_id=item.topic_id,
        subtopic_id=item.subtopic_id,
        document_id=item.document_id,
        priority=PART1_PRIORITY if part == 1 else PART2_PRIORITY,
    )


def _plan_item(slots, item, allow_over_capacity):
    """Find days for both parts without touching ``slots``.

    Returns (part1_index, part2_index) or a failure reason.
    """
    part1, part2 = split_minutes(item.estimated_minutes)
    slot1 = find_slot(slots, part1, allow_over_capacity=allow_over_capacity)
    if slot1 is None:
        return None, f"no day with {part1} free minutes for part 1"
    index1 = slots.index(slot1)

    trial = copy.deepcopy(slots)
    consume(trial[index1], part1)
    preferred = next_slot_date(trial, slot1.date)
    slot2 = find_slot(trial, part2, preferred_date=preferred, allow_over_capacity=allow_over_capacity)
    if slot2 is None:
        return None, f"no day with {part2} free minutes for part 2"
    return (index1, trial.index(slot2)), None


def distribute_items(
    items: list[StudyItem],
    start: date,
    end: date,
    rule: DailyHoursRule,
    commitments=(),
    allow_over_capacity: bool = False,
) -> DistributionResult:
    """Place every item's two initial sessions into the calendar.

    ``allow_over_capacity`` forces every item onto some day so that the
    resulting overloads show up as conflicts; commit runs leave it off and
    drop items that do not fit.
    """
    slots = build_calendar(start, end, rule, commitments)
    required = sum(item.estimated_minutes for item in items)
    capacity = total_capacity(slots)
    feasibility = classify(required, capacity)

    sessions = []
    skipped = []
    for item in sorted(items, key=lambda i: i.estimated_minutes, reverse=True):
        placement, reason = _plan_item(slots, item, allow_over_capacity)
        if placement is None:
            log.warning("placement_failed", item_id=item.id, title=item.title, reason=reason)
            skipped.append(PlacementFailure(item=item, reason=reason))
            continue
        part1, part2 = split_minutes(item.estimated_minutes)
        index1, index2 = placement

        consume(slots[index1], part1)
        sessions.append(_session(item, slots[index1].date, part1, 1))
        consume(slots[index2], part2)
        sessions.append(_session(item, slots[index2].date, part2, 2))

    pct = feasibility.utilization
    result = DistributionResult(
        sessions=sessions,
        scenario=feasibility.scenario,
        warnings=list(feasibility.warnings),
        total_minutes=required,
        available_minutes=capacity,
        utilization_percentage=round_half_up(pct) if math.isfinite(pct) else None,
        conflicts=detect_conflicts(slots),
        skipped_items=skipped,
        slots=slots,
    )
    log.info(
        "distribution_finished",
        items=len(items),
        placed=len(sessions) // 2,
        skipped=len(skipped),
        scenario=result.scenario.value,
        utilization=result.utilization_percentage,
        conflicts=len(result.conflicts),
        allow_over_capacity=allow_over_capacity,
    )
    return result
