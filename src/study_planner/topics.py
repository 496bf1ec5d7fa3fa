"""Overlap between newly selected items and existing ad-hoc commitments."""
from study_planner.models import (
    ConflictAction, DetailedCommitment, StudyItem, TopicConflict, TopicConflictReport,
)


def _matches(item: StudyItem, commitment: DetailedCommitment) -> bool:
    if item.subtopic_id:
        return commitment.subtopic_id == item.subtopic_id
    if item.topic_id:
        return commitment.topic_id == item.topic_id and not commitment.subtopic_id
    return False


def find_topic_conflicts(items: list[StudyItem], commitments: list[DetailedCommitment]) -> TopicConflictReport:
    """Pair each item with the ad-hoc commitments that cover the same topic.

    A subtopic item matches on subtopic; a topic-only item matches only
    commitments on the whole topic.
    """
    conflicts = []
    matched_ids = set()
    for item in items:
        existing = [c for c in commitments if _matches(item, c)]
        if not existing:
            continue
        conflicts.append(TopicConflict(
            item_id=item.id,
            title=item.title,
            existing=existing,
            topic_id=item.topic_id,
            subtopic_id=item.subtopic_id,
        ))
        matched_ids.update(c.id for c in existing)
    unrelated = [c for c in commitments if c.id not in matched_ids]
    return TopicConflictReport(conflicts=conflicts, unrelated_commitments=unrelated)


def split_resolutions(conflicts: list[TopicConflict]) -> tuple[list[int], list[int]]:
    """Commitment ids to link into the plan and ids to replace.

    Excluded commitments appear in neither list.
    """
    link, replace = [], []
    for conflict in conflicts:
        action = ConflictAction(conflict.action)
        ids = [c.id for c in conflict.existing]
        if action == ConflictAction.LINK:
            link.extend(ids)
        elif action == ConflictAction.REPLACE:
            replace.extend(ids)
    return link, replace


def link_patch(plan_id: int) -> dict:
    """Re-tag a commitment as part of a plan; its date and duration stay put."""
    return {"item_type": "plan", "plan_id": plan_id}


def replace_patch(deleted_at: str) -> dict:
    return {"deleted_at": deleted_at}
