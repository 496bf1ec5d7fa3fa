"""Plan preview/commit and session completion against the store."""
from datetime import date, datetime, timezone
from typing import Optional

import structlog

from study_planner import db
from study_planner.capacity import DailyHoursRule
from study_planner.config import get_daily_hours_rule, get_study_config
from study_planner.conflicts import check_day
from study_planner.db import DEFAULT_USER
from study_planner.distribution import distribute_items
from study_planner.errors import (
    InfeasiblePlanError, PriorStateMissing, SessionAlreadyCompletedError, SessionNotFoundError,
)
from study_planner.models import (
    CompletionResult, ConflictInfo, DistributionResult, PerformanceData, Scenario,
    SessionType, StudyItem, TopicConflictReport,
)
from study_planner.repetition import RepetitionScheduler
from study_planner.revisions import build_follow_up
from study_planner.topics import find_topic_conflicts, link_patch, replace_patch, split_resolutions

log = structlog.get_logger(__name__)


def _rule(db_path: str, rule: Optional[DailyHoursRule]) -> DailyHoursRule:
    return rule if rule is not None else get_daily_hours_rule(db_path)


def overlap_warnings(db_path: str, start: date, end: date, user_id: str = DEFAULT_USER) -> list[str]:
    """One warning per active plan already covering part of [start, end]."""
    return [
        f"Overlaps active plan \"{p['title']}\" (#{p['id']}, "
        f"{p['start_date'].isoformat()} to {p['target_date'].isoformat()}); "
        "its sessions are not counted against this plan's capacity"
        for p in db.find_overlapping_plans(db_path, user_id, start, end)
    ]


def preview_distribution(
    db_path: str,
    items: list[StudyItem],
    start: date,
    end: date,
    rule: DailyHoursRule = None,
    user_id: str = DEFAULT_USER,
) -> DistributionResult:
    """Distribute without saving, forcing every item somewhere so overloads show."""
    commitments = db.fetch_commitments(db_path, user_id, start, end)
    result = distribute_items(items, start, end, _rule(db_path, rule), commitments, allow_over_capacity=True)
    result.warnings.extend(overlap_warnings(db_path, start, end, user_id))
    return result


def commit_distribution(
    db_path: str,
    items: list[StudyItem],
    start: date,
    end: date,
    rule: DailyHoursRule = None,
    title: str = "Study plan",
    topic_conflicts: list = None,
    user_id: str = DEFAULT_USER,
) -> DistributionResult:
    """Distribute within capacity and save the plan.

    Commitments a topic conflict replaces no longer take up capacity. Raises
    InfeasiblePlanError when the plan is impossible or nothing fits.
    """
    link_ids, replace_ids = split_resolutions(topic_conflicts or [])
    commitments = [
        c for c in db.fetch_detailed_commitments(db_path, user_id, start, end) if c.id not in replace_ids
    ]
    result = distribute_items(items, start, end, _rule(db_path, rule), commitments, allow_over_capacity=False)
    reasons = list(result.warnings) or [f"none of the {len(items)} items fit the available days"]
    overlaps = overlap_warnings(db_path, start, end, user_id)
    result.warnings.extend(overlaps)

    if result.scenario == Scenario.IMPOSSIBLE or not result.sessions:
        log.warning("commit_rejected", scenario=result.scenario.value, skipped=len(result.skipped_items))
        raise InfeasiblePlanError(
            f"Cannot create the plan: {', '.join(reasons)}. "
            "Adjust the period, the daily hours or the selected items.",
            result=result,
        )
    if overlaps:
        log.warning("plan_overlap", title=title, overlapping=len(overlaps))

    patches = {i: link_patch for i in link_ids}
    patches.update({i: replace_patch(datetime.now().isoformat()) for i in replace_ids})
    plan_id = db.commit_plan(db_path, title, start, end, result.sessions, patches, user_id)
    result.plan_id = plan_id
    log.info("plan_committed", plan_id=plan_id, sessions=len(result.sessions), linked=len(link_ids))
    return result


def complete_session(
    db_path: str,
    session_id: int,
    performance: PerformanceData = None,
    now: datetime = None,
    user_id: str = DEFAULT_USER,
) -> CompletionResult:
    """Mark a session done and create the next one in its chain.

    A session can only be completed once. When a revision has no stored
    memory state the completion still goes through, but ``chain_error``
    explains why no follow-up exists.
    """
    performance = performance or PerformanceData()
    now = now or datetime.now(timezone.utc)
    session = db.get_session(db_path, session_id, user_id)
    if session is None:
        raise SessionNotFoundError(f"Session {session_id} not found")
    if session.completed:
        raise SessionAlreadyCompletedError(f"Session {session_id} is already completed")
    completed_at = now.isoformat()

    if session.next_id is not None:
        # Part 1 committed together with its part 2.
        db.complete_session_record(db_path, session_id, performance.to_dict(), completed_at, user_id=user_id)
        return CompletionResult(completed=True, next_session=db.get_session(db_path, session.next_id, user_id))

    if session.session_type is None:
        db.complete_session_record(db_path, session_id, performance.to_dict(), completed_at, user_id=user_id)
        return CompletionResult(completed=True)

    parent = None
    if session.session_type == SessionType.INITIAL_PART_2 and session.parent_id is not None:
        parent = db.get_session(db_path, session.parent_id, user_id)
    scheduler = RepetitionScheduler(get_study_config(db_path).aggressiveness)

    try:
        follow = build_follow_up(session, performance, scheduler, now, parent=parent)
    except PriorStateMissing as e:
        log.warning("prior_state_missing", session_id=session_id, reason=str(e))
        db.complete_session_record(db_path, session_id, performance.to_dict(), completed_at, user_id=user_id)
        return CompletionResult(completed=True, chain_error=str(e))

    db.complete_session_record(
        db_path, session_id, performance.to_dict(), completed_at,
        follow_up=follow.session, predecessor_patch=follow.predecessor_patch, user_id=user_id,
    )
    log.info(
        "follow_up_created",
        session_id=session_id,
        next_id=follow.session.id,
        next_date=follow.session.date.isoformat(),
        kind=follow.session.revision_kind.value if follow.session.revision_kind else None,
    )
    return CompletionResult(completed=True, next_session=follow.session, created=True)


def detect_topic_conflicts(
    db_path: str,
    items: list[StudyItem],
    start: date,
    end: date,
    user_id: str = DEFAULT_USER,
) -> TopicConflictReport:
    commitments = db.fetch_detailed_commitments(db_path, user_id, start, end)
    return find_topic_conflicts(items, commitments)


def check_day_conflict(
    db_path: str,
    day: date,
    minutes: int,
    exclude_id: int = None,
    rule: DailyHoursRule = None,
    user_id: str = DEFAULT_USER,
) -> ConflictInfo:
    """Would adding ``minutes`` of work on ``day`` overload it?"""
    capacity = _rule(db_path, rule).capacity_for(day) or 0
    scheduled = sum(
        s.duration_minutes
        for s in db.get_sessions(db_path, day, day, user_id)
        if s.id != exclude_id
    )
    return check_day(capacity, scheduled, minutes)


def sessions_by_date(db_path: str, start: date, end: date, user_id: str = DEFAULT_USER) -> dict:
    agenda = {}
    for session in db.get_sessions(db_path, start, end, user_id):
        agenda.setdefault(session.date, []).append(session)
    return agenda


def plan_progress(db_path: str, plan_id: int) -> dict:
    sessions = db.get_plan_sessions(db_path, plan_id)
    total = len(sessions)
    completed = sum(1 for s in sessions if s.completed)
    return {
        "total": total,
        "completed": completed,
        "percentage": round(completed / total * 100) if total else 0,
    }
