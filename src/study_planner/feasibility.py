"""Feasibility classification of required study time against capacity."""
import math

from study_planner.models import Feasibility, Scenario

TIGHT_THRESHOLD = 80
RELAXED_THRESHOLD = 40


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def utilization(required_minutes: int, capacity_minutes: int) -> float:
    if capacity_minutes <= 0:
        return 0.0 if required_minutes <= 0 else math.inf
    return required_minutes / capacity_minutes * 100


def classify(required_minutes: int, capacity_minutes: int) -> Feasibility:
    """Classify a plan by how much of the capacity it needs.

    Pure capacity check: it says nothing about whether each item actually
    found a day.
    """
    pct = utilization(required_minutes, capacity_minutes)

    if required_minutes > capacity_minutes:
        required_h = required_minutes / 60
        capacity_h = capacity_minutes / 60
        return Feasibility(
            scenario=Scenario.IMPOSSIBLE,
            warnings=[
                f"Required time ({required_h:.1f}h) exceeds available capacity ({capacity_h:.1f}h) "
                f"by {required_h - capacity_h:.1f}h",
                "Suggestions: extend the period, raise the daily hours or reduce the selected items",
            ],
            utilization=pct,
        )

    if pct > TIGHT_THRESHOLD:
        return Feasibility(
            scenario=Scenario.TIGHT,
            warnings=[
                f"Tight schedule: {round_half_up(pct)}% utilization",
                "Little room left for extra revisions or unexpected events",
            ],
            utilization=pct,
        )

    if pct < RELAXED_THRESHOLD:
        return Feasibility(
            scenario=Scenario.RELAXED,
            warnings=[
                f"Relaxed schedule: only {round_half_up(pct)}% utilization",
                "Consider shortening the period or adding more content",
            ],
            utilization=pct,
        )

    return Feasibility(scenario=Scenario.NORMAL, warnings=[], utilization=pct)
