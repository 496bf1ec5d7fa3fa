"""Follow-up session chain: part 1 -> part 2 -> revision 1 -> revision 2 ...

Builders here are pure. They return the new session and the patch to apply
to its predecessor; writing both is the caller's job.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from fsrs import Rating

from study_planner.distribution import PART1_SHARE, PART2_PRIORITY, part_title
from study_planner.errors import PriorStateMissing
from study_planner.feasibility import round_half_up
from study_planner.models import PerformanceData, ScheduledSession, SessionType
from study_planner.repetition import (
    RepetitionScheduler, estimated_duration, rating_from_score, session_kind,
)

log = structlog.get_logger(__name__)

# Weights of the part 1 + part 2 performance blend; they sum to 1.0.
TIME_WEIGHT = 0.25
FLASHCARD_WEIGHT = 0.30
QUESTIONS_WEIGHT = 0.35
COMPLETION_WEIGHT = 0.10

DEFAULT_TIME_SCORE = 3
DEFAULT_FLASHCARD_SCORE = 3
DEFAULT_QUESTIONS_SCORE = 3
DEFAULT_COMPLETION_SCORE = 4

BASE_PRIORITY = 5
HARD_PRIORITY = 8
AGAIN_PRIORITY = 10
CRITICAL_NOTE = "CRITICAL - severe forgetting detected"
REINFORCE_NOTE = "Reinforce - review needed"


@dataclass
class FollowUp:
    session: ScheduledSession
    predecessor_patch: dict


def _or_default(value, default):
    return default if value is None else value


def combined_rating(part1: PerformanceData, part2: PerformanceData) -> float:
    """Blend the two initial sessions into one 0..4 score.

    Time, flashcards and completion come from part 1, questions from part 2.
    """
    return (
        _or_default(part1.time_score, DEFAULT_TIME_SCORE) * TIME_WEIGHT
        + _or_default(part1.flashcard_score, DEFAULT_FLASHCARD_SCORE) * FLASHCARD_WEIGHT
        + _or_default(part2.questions_score, DEFAULT_QUESTIONS_SCORE) * QUESTIONS_WEIGHT
        + _or_default(part1.completion_score, DEFAULT_COMPLETION_SCORE) * COMPLETION_WEIGHT
    )


def revision_title(base_title: str, number: int) -> str:
    return f"{base_title} - Revision {number}"


def priority_for(rating: Rating) -> tuple[int, Optional[str]]:
    if rating == Rating.Again:
        return AGAIN_PRIORITY, CRITICAL_NOTE
    if rating == Rating.Hard:
        return HARD_PRIORITY, REINFORCE_NOTE
    return BASE_PRIORITY, None


def _derived(session: ScheduledSession, **changes) -> ScheduledSession:
    return ScheduledSession(
        item_id=session.item_id,
        topic_id=session.topic_id,
        subtopic_id=session.subtopic_id,
        document_id=session.document_id,
        plan_id=session.plan_id,
        item_type=session.item_type,
        parent_id=session.id,
        **changes,
    )


def follow_up_part2(part1: ScheduledSession) -> FollowUp:
    """Second initial session on the next day; performance plays no part."""
    total = round_half_up(part1.duration_minutes / PART1_SHARE)
    part2 = _derived(
        part1,
        title=part_title(part1.base_title, 2),
        date=part1.date + timedelta(days=1),
        duration_minutes=total - part1.duration_minutes,
        session_type=SessionType.INITIAL_PART_2,
        revision_number=0,
        priority=PART2_PRIORITY,
    )
    return FollowUp(session=part2, predecessor_patch={})


def follow_up_first_revision(
    part2: ScheduledSession,
    performance: PerformanceData,
    part1_performance: PerformanceData,
    scheduler: RepetitionScheduler,
    now: datetime,
) -> FollowUp:
    score = combined_rating(part1_performance, performance)
    rating = rating_from_score(score)
    outcome = scheduler.next_review(None, rating, now)
    kind = session_kind(rating, SessionType.INITIAL_PART_2.value)
    revision = _derived(
        part2,
        title=revision_title(part2.base_title, 1),
        date=outcome.next_date,
        duration_minutes=estimated_duration(kind),
        session_type=SessionType.REVISION,
        revision_number=1,
        revision_kind=kind,
        priority=BASE_PRIORITY,
        memory_state=outcome.next_state,
    )
    enriched = performance.to_dict()
    enriched.update(final_rating=score, fsrs_rating=rating.name)
    return FollowUp(session=revision, predecessor_patch={"performance_data": enriched})


def follow_up_revision(
    revision: ScheduledSession,
    performance: PerformanceData,
    scheduler: RepetitionScheduler,
    now: datetime,
) -> FollowUp:
    if not revision.memory_state:
        raise PriorStateMissing(
            f"Revision {revision.revision_number} of {revision.base_title!r} has no stored memory state"
        )
    if performance.final_rating is None:
        raise PriorStateMissing(
            f"Revision {revision.revision_number} of {revision.base_title!r} was completed without a final rating"
        )
    rating = rating_from_score(performance.final_rating)
    outcome = scheduler.next_review(revision.memory_state, rating, now)
    kind = session_kind(rating, revision.revision_kind)
    priority, note = priority_for(rating)
    number = revision.revision_number + 1
    follow = _derived(
        revision,
        title=revision_title(revision.base_title, number),
        date=outcome.next_date,
        duration_minutes=estimated_duration(kind),
        session_type=SessionType.REVISION,
        revision_number=number,
        revision_kind=kind,
        priority=priority,
        notes=note,
        memory_state=outcome.next_state,
    )
    return FollowUp(session=follow, predecessor_patch={})


def build_follow_up(
    session: ScheduledSession,
    performance: PerformanceData,
    scheduler: RepetitionScheduler,
    now: datetime,
    parent: Optional[ScheduledSession] = None,
) -> FollowUp:
    """Decide the next session after ``session`` is completed.

    ``parent`` is the part 1 record when ``session`` is a part 2.
    """
    if session.session_type == SessionType.INITIAL_PART_1:
        return follow_up_part2(session)
    if session.session_type == SessionType.INITIAL_PART_2:
        if parent is None:
            log.warning("part1_missing", session_id=session.id, title=session.title)
        part1_performance = PerformanceData.from_dict(parent.performance_data if parent else None)
        follow = follow_up_first_revision(session, performance, part1_performance, scheduler, now)
        if parent is not None:
            follow.predecessor_patch["performance_data"]["combined_from"] = parent.id
        return follow
    return follow_up_revision(session, performance, scheduler, now)
