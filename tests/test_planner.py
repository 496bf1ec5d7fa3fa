# tests/test_planner.py
from datetime import date, datetime, timezone

import pytest

from study_planner.capacity import DailyHoursRule
from study_planner.config import StudyConfig, save_study_config
from study_planner.db import add_manual_commitment, get_session, get_sessions, persist_sessions
from study_planner.errors import (
    InfeasiblePlanError, SessionAlreadyCompletedError, SessionNotFoundError,
)
from study_planner.models import (
    ConflictAction, PerformanceData, RevisionKind, Scenario, ScheduledSession, SessionType, StudyItem,
)
from study_planner.planner import (
    check_day_conflict, commit_distribution, complete_session, detect_topic_conflicts,
    plan_progress, preview_distribution, sessions_by_date,
)

MONDAY = date(2025, 3, 3)
TUESDAY = date(2025, 3, 4)
FRIDAY = date(2025, 3, 7)
NOW = datetime(2025, 3, 4, 20, 0, tzinfo=timezone.utc)
THREE_HOURS = DailyHoursRule(weekday_hours=3)
TWO_HOURS = DailyHoursRule(weekday_hours=2)

CELLS = StudyItem(id="cells", title="Cell Biology", estimated_minutes=100, topic_id="bio", subtopic_id="cells")


@pytest.fixture
def committed(db):
    """A committed one-item plan on an aggressive review profile."""
    save_study_config(db, StudyConfig(aggressiveness="aggressive"))
    result = commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS, title="Biology")
    part1, part2 = sorted(get_sessions(db, MONDAY, FRIDAY), key=lambda s: s.date)
    return result, part1, part2


def test_preview_does_not_persist(db):
    result = preview_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS)
    assert len(result.sessions) == 2
    assert result.plan_id is None
    assert get_sessions(db, MONDAY, FRIDAY) == []


def test_preview_surfaces_overloads(db):
    add_manual_commitment(db, MONDAY, 120, "Lab")
    result = preview_distribution(db, [CELLS], MONDAY, MONDAY, rule=TWO_HOURS)
    assert result.scenario == Scenario.TIGHT
    assert result.conflicts[0].date == MONDAY
    assert result.conflicts[0].required_minutes == 220


def test_preview_uses_stored_config(db):
    save_study_config(db, StudyConfig(weekday_hours=1))
    result = preview_distribution(db, [CELLS], MONDAY, FRIDAY)
    assert result.available_minutes == 5 * 60


def test_commit_persists_linked_parts(committed):
    result, part1, part2 = committed
    assert result.plan_id is not None
    assert part1.plan_id == part2.plan_id == result.plan_id
    assert (part1.date, part1.duration_minutes, part1.priority) == (MONDAY, 60, 7)
    assert (part2.date, part2.duration_minutes, part2.priority) == (TUESDAY, 40, 9)
    assert part1.next_id == part2.id
    assert part2.parent_id == part1.id


def test_commit_rejects_impossible_plan(db):
    big = StudyItem(id="big", title="Big", estimated_minutes=1000)
    with pytest.raises(InfeasiblePlanError) as excinfo:
        commit_distribution(db, [big], MONDAY, MONDAY, rule=THREE_HOURS)
    assert excinfo.value.result.scenario == Scenario.IMPOSSIBLE
    assert "exceeds available capacity" in str(excinfo.value)
    assert get_sessions(db, MONDAY, FRIDAY) == []


def test_commit_rejects_when_nothing_fits(db):
    rule = DailyHoursRule(weekday_hours=1)
    item = StudyItem(id="x", title="X", estimated_minutes=110)
    with pytest.raises(InfeasiblePlanError) as excinfo:
        commit_distribution(db, [item], MONDAY, TUESDAY, rule=rule)
    assert excinfo.value.result.scenario == Scenario.TIGHT
    assert len(excinfo.value.result.skipped_items) == 1


def test_commit_never_overbooks_existing_commitments(db):
    add_manual_commitment(db, MONDAY, 150, "Lab")
    commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS)
    for day, sessions in sessions_by_date(db, MONDAY, FRIDAY).items():
        assert sum(s.duration_minutes for s in sessions) <= 180


def test_linked_commitment_keeps_date_and_duration(db):
    cid = add_manual_commitment(db, MONDAY, 30, "Cells flashcards", topic_id="bio", subtopic_id="cells")
    report = detect_topic_conflicts(db, [CELLS], MONDAY, FRIDAY)
    assert report.conflicts[0].action == ConflictAction.LINK

    result = commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS, topic_conflicts=report.conflicts)

    linked = get_session(db, cid)
    assert linked.date == MONDAY
    assert linked.duration_minutes == 30
    assert linked.plan_id == result.plan_id
    assert linked.item_type == "plan"
    assert result.slots[0].used_minutes == 30 + 60


def test_replaced_commitment_frees_capacity(db):
    cid = add_manual_commitment(db, MONDAY, 120, "Cells reading", topic_id="bio", subtopic_id="cells")
    report = detect_topic_conflicts(db, [CELLS], MONDAY, MONDAY)
    report.conflicts[0].action = ConflictAction.REPLACE

    result = commit_distribution(db, [CELLS], MONDAY, MONDAY, rule=TWO_HOURS, topic_conflicts=report.conflicts)

    assert len(result.sessions) == 2
    assert get_session(db, cid) is None


def test_replace_not_applied_when_commit_fails(db):
    cid = add_manual_commitment(db, MONDAY, 30, "Cells reading", topic_id="bio", subtopic_id="cells")
    report = detect_topic_conflicts(db, [CELLS], MONDAY, MONDAY)
    report.conflicts[0].action = ConflictAction.REPLACE
    big = StudyItem(id="cells", title="Cells", estimated_minutes=1000, topic_id="bio", subtopic_id="cells")

    with pytest.raises(InfeasiblePlanError):
        commit_distribution(db, [big], MONDAY, MONDAY, rule=TWO_HOURS, topic_conflicts=report.conflicts)
    assert get_session(db, cid) is not None


def test_excluded_commitment_untouched(db):
    cid = add_manual_commitment(db, MONDAY, 30, "Cells reading", topic_id="bio", subtopic_id="cells")
    report = detect_topic_conflicts(db, [CELLS], MONDAY, FRIDAY)
    report.conflicts[0].action = ConflictAction.EXCLUDE
    commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS, topic_conflicts=report.conflicts)

    stored = get_session(db, cid)
    assert stored.item_type == "manual"
    assert stored.plan_id is None


def test_completing_part1_returns_linked_part2(db, committed):
    _, part1, part2 = committed
    outcome = complete_session(db, part1.id, PerformanceData(time_score=4, flashcard_score=4), now=NOW)

    assert outcome.completed
    assert not outcome.created
    assert outcome.next_session.id == part2.id
    assert get_session(db, part1.id).performance_data == {"time_score": 4, "flashcard_score": 4}


def test_full_chain_to_critical_revision(db, committed):
    _, part1, part2 = committed
    complete_session(db, part1.id, PerformanceData(time_score=4, flashcard_score=4, completion_score=4), now=NOW)
    outcome = complete_session(db, part2.id, PerformanceData(questions_score=4), now=NOW)

    revision = outcome.next_session
    assert outcome.created
    assert revision.id is not None
    assert revision.title == "Cell Biology - Revision 1"
    assert revision.revision_kind == RevisionKind.FLASHCARDS_ONLY
    assert revision.date > NOW.date()
    assert get_session(db, part2.id).next_id == revision.id
    stored_part2 = get_session(db, part2.id).performance_data
    assert stored_part2["fsrs_rating"] == "Easy"
    assert stored_part2["combined_from"] == part1.id

    outcome = complete_session(db, revision.id, PerformanceData(final_rating=0.5), now=NOW)
    critical = get_session(db, outcome.next_session.id)
    assert critical.revision_kind == RevisionKind.READING_AND_QUESTIONS
    assert critical.duration_minutes == 45
    assert critical.priority == 10
    assert critical.notes.startswith("CRITICAL")
    assert critical.revision_number == 2
    assert critical.parent_id == revision.id
    assert critical.memory_state


def test_second_completion_does_not_duplicate_chain(db, committed):
    _, part1, part2 = committed
    complete_session(db, part1.id, now=NOW)
    complete_session(db, part2.id, PerformanceData(questions_score=3), now=NOW)
    before = get_sessions(db, MONDAY, date(2026, 12, 31))

    with pytest.raises(SessionAlreadyCompletedError):
        complete_session(db, part2.id, PerformanceData(questions_score=3), now=NOW)
    assert get_sessions(db, MONDAY, date(2026, 12, 31)) == before


def test_unknown_session(db):
    with pytest.raises(SessionNotFoundError):
        complete_session(db, 999)


def test_manual_item_has_no_follow_up(db):
    cid = add_manual_commitment(db, MONDAY, 30, "Past papers")
    outcome = complete_session(db, cid, now=NOW)
    assert outcome.completed
    assert outcome.next_session is None
    assert get_session(db, cid).completed


def test_part1_without_link_creates_part2(db):
    part1 = ScheduledSession(
        item_id="x", title="X - Initial Study (Part 1)", date=MONDAY, duration_minutes=60,
        session_type=SessionType.INITIAL_PART_1, priority=7,
    )
    persist_sessions(db, [part1])
    outcome = complete_session(db, part1.id, now=NOW)
    assert outcome.created
    assert outcome.next_session.date == TUESDAY
    assert outcome.next_session.duration_minutes == 40
    assert get_session(db, part1.id).next_id == outcome.next_session.id


def test_revision_without_state_reports_chain_error(db):
    revision = ScheduledSession(
        item_id="x", title="X - Revision 1", date=MONDAY, duration_minutes=10,
        session_type=SessionType.REVISION, revision_number=1, revision_kind=RevisionKind.FLASHCARDS_ONLY,
    )
    persist_sessions(db, [revision])
    outcome = complete_session(db, revision.id, PerformanceData(final_rating=3), now=NOW)

    assert outcome.completed
    assert outcome.next_session is None
    assert "memory state" in outcome.chain_error
    stored = get_session(db, revision.id)
    assert stored.completed
    assert stored.next_id is None


def test_check_day_conflict(db):
    cid = add_manual_commitment(db, MONDAY, 90, "Lab")
    info = check_day_conflict(db, MONDAY, 60, rule=TWO_HOURS)
    assert info.has_conflict
    assert info.overload_hours == 0.5
    assert not check_day_conflict(db, MONDAY, 60, exclude_id=cid, rule=TWO_HOURS).has_conflict


def test_check_day_conflict_on_day_off(db):
    info = check_day_conflict(db, date(2025, 3, 8), 30, rule=TWO_HOURS)
    assert info.has_conflict
    assert info.available_hours == 0


def test_sessions_by_date_and_progress(db, committed):
    result, part1, _ = committed
    agenda = sessions_by_date(db, MONDAY, FRIDAY)
    assert list(agenda) == [MONDAY, TUESDAY]
    assert plan_progress(db, result.plan_id) == {"total": 2, "completed": 0, "percentage": 0}

    complete_session(db, part1.id, now=NOW)
    assert plan_progress(db, result.plan_id) == {"total": 2, "completed": 1, "percentage": 50}


def test_progress_of_empty_plan(db):
    assert plan_progress(db, 42) == {"total": 0, "completed": 0, "percentage": 0}


def test_overlapping_plan_is_reported(db):
    first = commit_distribution(db, [CELLS], MONDAY, TUESDAY, rule=TWO_HOURS, title="First")
    genetics = StudyItem(id="genetics", title="Genetics", estimated_minutes=100)

    preview = preview_distribution(db, [genetics], TUESDAY, FRIDAY, rule=TWO_HOURS)
    second = commit_distribution(db, [genetics], TUESDAY, FRIDAY, rule=TWO_HOURS, title="Second")

    for result in (preview, second):
        overlap, = [w for w in result.warnings if w.startswith("Overlaps active plan")]
        assert '"First"' in overlap
        assert f"#{first.plan_id}" in overlap
        assert "2025-03-03 to 2025-03-04" in overlap


def test_finished_or_distant_plans_do_not_warn(db, committed):
    _, part1, part2 = committed
    later = commit_distribution(db, [CELLS], date(2025, 3, 10), date(2025, 3, 14), rule=THREE_HOURS)
    assert not any(w.startswith("Overlaps") for w in later.warnings)

    complete_session(db, part1.id, now=NOW)
    complete_session(db, part2.id, now=NOW)
    preview = preview_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS)
    assert not any(w.startswith("Overlaps") for w in preview.warnings)


def test_other_users_plans_do_not_warn(db):
    commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS, user_id="alice")
    preview = preview_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS)
    assert not any(w.startswith("Overlaps") for w in preview.warnings)


def test_cannot_complete_another_users_session(db):
    result = commit_distribution(db, [CELLS], MONDAY, FRIDAY, rule=THREE_HOURS, user_id="alice")
    alice_part1 = result.sessions[0]

    with pytest.raises(SessionNotFoundError):
        complete_session(db, alice_part1.id, now=NOW, user_id="bob")
    assert not get_session(db, alice_part1.id, "alice").completed

    outcome = complete_session(db, alice_part1.id, now=NOW, user_id="alice")
    assert outcome.next_session.id == result.sessions[1].id
