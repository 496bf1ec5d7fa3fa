"""Data classes for the planner domain model."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


class SessionType(str, Enum):
    INITIAL_PART_1 = "initial_part_1"
    INITIAL_PART_2 = "initial_part_2"
    REVISION = "revision"


class RevisionKind(str, Enum):
    FLASHCARDS_ONLY = "flashcards_only"
    QUESTIONS_ONLY = "questions_only"
    READING_AND_FLASHCARDS = "reading_and_flashcards"
    READING_AND_QUESTIONS = "reading_and_questions"


class Scenario(str, Enum):
    IMPOSSIBLE = "impossible"
    TIGHT = "tight"
    NORMAL = "normal"
    RELAXED = "relaxed"


class ConflictAction(str, Enum):
    LINK = "link"
    REPLACE = "replace"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class StudyItem:
    id: str
    title: str
    estimated_minutes: int
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    document_id: Optional[str] = None

    def __post_init__(self):
        if self.estimated_minutes <= 0:
            raise ValueError(f"estimated_minutes must be positive, got {self.estimated_minutes}")


@dataclass
class Commitment:
    date: date
    minutes: int
    title: str = ""


@dataclass
class DetailedCommitment:
    id: int
    date: date
    minutes: int
    title: str = ""
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None


@dataclass
class DaySlot:
    date: date
    total_capacity_minutes: int
    used_minutes: int = 0
    commitments: list = field(default_factory=list)  # [(title, minutes)]

    @property
    def available_minutes(self) -> int:
        return max(0, self.total_capacity_minutes - self.used_minutes)

    @property
    def overloaded(self) -> bool:
        return self.used_minutes > self.total_capacity_minutes

    def fits(self, minutes: int) -> bool:
        return not self.overloaded and self.available_minutes >= minutes


@dataclass
class ScheduledSession:
    item_id: str
    title: str
    date: date
    duration_minutes: int
    session_type: SessionType
    revision_number: int = 0
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    document_id: Optional[str] = None
    # Persisted fields
    id: Optional[int] = None
    plan_id: Optional[int] = None
    item_type: str = "plan"
    revision_kind: Optional[RevisionKind] = None
    priority: int = 5
    notes: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None
    performance_data: Optional[dict] = None
    memory_state: Optional[dict] = None
    parent_id: Optional[int] = None
    next_id: Optional[int] = None

    @property
    def base_title(self) -> str:
        """Item title without the session role annotation."""
        head, sep, _ = self.title.rpartition(" - ")
        return head if sep else self.title


@dataclass
class DayConflict:
    date: date
    required_minutes: int
    available_minutes: int
    overload_percentage: int


@dataclass
class ConflictInfo:
    has_conflict: bool
    available_hours: float
    scheduled_hours: float
    remaining_hours: float
    new_item_hours: float
    total_after_schedule: float
    overload_hours: float
    suggested_availability: int


@dataclass
class Feasibility:
    scenario: Scenario
    warnings: list
    utilization: float

    @property
    def is_valid(self) -> bool:
        return self.scenario != Scenario.IMPOSSIBLE


@dataclass
class PlacementFailure:
    item: StudyItem
    reason: str


@dataclass
class DistributionResult:
    sessions: list
    scenario: Scenario
    warnings: list
    total_minutes: int
    available_minutes: int
    utilization_percentage: Optional[int]
    conflicts: list
    skipped_items: list = field(default_factory=list)
    slots: list = field(default_factory=list)
    plan_id: Optional[int] = None


@dataclass
class PerformanceData:
    time_score: Optional[float] = None
    flashcard_score: Optional[float] = None
    questions_score: Optional[float] = None
    completion_score: Optional[float] = None
    final_rating: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PerformanceData":
        data = data or {}
        return cls(
            time_score=data.get("time_score"),
            flashcard_score=data.get("flashcard_score"),
            questions_score=data.get("questions_score"),
            completion_score=data.get("completion_score"),
            final_rating=data.get("final_rating"),
        )

    def to_dict(self) -> dict:
        return {k: v for k, v in vars(self).items() if v is not None}


@dataclass
class TopicConflict:
    item_id: str
    title: str
    existing: list  # [DetailedCommitment]
    topic_id: Optional[str] = None
    subtopic_id: Optional[str] = None
    action: ConflictAction = ConflictAction.LINK


@dataclass
class TopicConflictReport:
    conflicts: list
    unrelated_commitments: list


@dataclass
class CompletionResult:
    completed: bool
    next_session: Optional[ScheduledSession] = None
    created: bool = False
    chain_error: Optional[str] = None
