"""Spaced repetition on top of the FSRS memory model.

The memory state handed out by this module is the dict form of an
``fsrs.Card``; nothing outside this module should look inside it.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from fsrs import Card, Rating, Scheduler

from study_planner.models import RevisionKind

AGGRESSIVENESS_PROFILES = {
    # Short-term exams: reviews come often and intervals are never randomized.
    "aggressive": {"desired_retention": 0.95, "maximum_interval": 180, "enable_fuzzing": False},
    "balanced": {"desired_retention": 0.90, "maximum_interval": 365, "enable_fuzzing": True},
    # Long-term learning: fewer reviews, lower target retention.
    "spaced": {"desired_retention": 0.85, "maximum_interval": 730, "enable_fuzzing": True},
}

PROFILE_INFO = {
    "aggressive": {
        "name": "Aggressive",
        "description": "More frequent reviews",
        "retention": "95%",
        "review_frequency": "High (+35% reviews)",
        "best_for": "Short-term exams",
    },
    "balanced": {
        "name": "Balanced",
        "description": "Balance between retention and time invested",
        "retention": "90%",
        "review_frequency": "Moderate (recommended)",
        "best_for": "Most study goals",
    },
    "spaced": {
        "name": "Spaced",
        "description": "Less frequent reviews",
        "retention": "85%",
        "review_frequency": "Low (-45% reviews)",
        "best_for": "Long-term learning",
    },
}

# Reviews per card per year and average interval in days, from FSRS simulations.
REVIEW_STATS = {
    "aggressive": (24, 15),
    "balanced": (16, 23),
    "spaced": (10, 36),
}

ESTIMATED_DURATIONS = {
    RevisionKind.FLASHCARDS_ONLY: 10,
    RevisionKind.QUESTIONS_ONLY: 15,
    RevisionKind.READING_AND_FLASHCARDS: 40,
    RevisionKind.READING_AND_QUESTIONS: 45,
}


@dataclass
class ReviewOutcome:
    next_date: date
    next_state: dict
    interval_days: int
    due: datetime


def rating_from_score(score: float) -> Rating:
    if score >= 3.5:
        return Rating.Easy
    if score >= 2.5:
        return Rating.Good
    if score >= 1.5:
        return Rating.Hard
    return Rating.Again


def session_kind(rating: Rating, last_kind: Optional[str] = None) -> RevisionKind:
    """Pick the format of the next revision from how the last one went."""
    if rating == Rating.Easy:
        return RevisionKind.FLASHCARDS_ONLY
    if rating == Rating.Good:
        last = str(getattr(last_kind, "value", last_kind) or "")
        if not last or last.startswith("initial") or last == RevisionKind.QUESTIONS_ONLY.value:
            return RevisionKind.FLASHCARDS_ONLY
        return RevisionKind.QUESTIONS_ONLY
    if rating == Rating.Hard:
        # Concepts slipped: re-read, then flashcards.
        return RevisionKind.READING_AND_FLASHCARDS
    # Not understood: re-read and assess with questions.
    return RevisionKind.READING_AND_QUESTIONS


def estimated_duration(kind: RevisionKind) -> int:
    return ESTIMATED_DURATIONS[RevisionKind(kind)]


def profile_info(aggressiveness: str) -> dict:
    return dict(PROFILE_INFO[aggressiveness])


def estimate_review_stats(aggressiveness: str, total_cards: int) -> dict:
    per_card, avg_interval = REVIEW_STATS[aggressiveness]
    yearly = total_cards * per_card
    return {
        "monthly_reviews": round(yearly / 12),
        "yearly_reviews": yearly,
        "average_interval": avg_interval,
    }


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class RepetitionScheduler:
    """FSRS scheduler tuned by an aggressiveness profile.

    Learning steps are disabled: sessions are planned per day, so every
    review has to land on a calendar day rather than minutes later.
    """

    def __init__(self, aggressiveness: str = "balanced"):
        if aggressiveness not in AGGRESSIVENESS_PROFILES:
            raise ValueError(
                f"Unknown aggressiveness {aggressiveness!r}; "
                f"expected one of {sorted(AGGRESSIVENESS_PROFILES)}"
            )
        self.aggressiveness = aggressiveness
        self._fsrs = Scheduler(
            learning_steps=(),
            relearning_steps=(),
            **AGGRESSIVENESS_PROFILES[aggressiveness],
        )

    def next_review(self, state: Optional[dict], rating: Rating, now: Optional[datetime] = None) -> ReviewOutcome:
        """Schedule the next review. A ``None`` state is a first-ever review."""
        now = _as_utc(now or datetime.now(timezone.utc))
        card = Card.from_dict(state) if state else Card(due=now)
        card, _ = self._fsrs.review_card(card, Rating(rating), review_datetime=now)
        interval = math.ceil((card.due - now).total_seconds() / 86400)
        return ReviewOutcome(
            next_date=card.due.date(),
            next_state=card.to_dict(),
            interval_days=interval,
            due=card.due,
        )
