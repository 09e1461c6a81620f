"""
Domain models for review scheduling.

These are pure data structures with no I/O or external dependencies.
Entities are frozen: every change produces a new version through
``dataclasses.replace`` and only becomes visible once a store commits it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum

from rehearser.domain.constants import (
    DEFAULT_DIFFICULTY_ADJUSTMENT,
    DEFAULT_EASE_FACTOR,
    UNCATEGORIZED,
)


class ReviewStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    POSTPONED = "postponed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReviewStatus.COMPLETED, ReviewStatus.SKIPPED)


class IntervalLevel(IntEnum):
    """Ordinal step in the review ladder; each step has a base day count."""

    FIRST = 1
    SECOND = 2
    THIRD = 3
    FOURTH = 4
    FIFTH = 5
    SIXTH = 6
    SEVENTH = 7
    MASTERED = 8

    @property
    def days(self) -> int:
        return _LADDER_DAYS[self]

    def advance(self) -> "IntervalLevel":
        """Next step, bounded at the last one."""
        if self is IntervalLevel.MASTERED:
            return self
        return IntervalLevel(self.value + 1)


_LADDER_DAYS = {
    IntervalLevel.FIRST: 1,
    IntervalLevel.SECOND: 3,
    IntervalLevel.THIRD: 7,
    IntervalLevel.FOURTH: 14,
    IntervalLevel.FIFTH: 30,
    IntervalLevel.SIXTH: 60,
    IntervalLevel.SEVENTH: 120,
    IntervalLevel.MASTERED: 180,
}


class MasteryLevel(IntEnum):
    NOT_LEARNED = 0
    LEARNING = 1
    FAMILIAR = 2
    PROFICIENT = 3
    ADVANCED = 4
    MASTERED = 5


class ConfidenceLevel(IntEnum):
    """Learner's self-reported confidence after an attempt."""

    VERY_LOW = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    VERY_HIGH = 5


@dataclass(frozen=True)
class Item:
    """
    A learned unit, typically one algorithm problem.

    Attributes:
        mastery: Proficiency on the 0-5 MasteryLevel scale.
        average_score: Running mean of every completion score.
        streak_count: Consecutive completions scoring 4 or more.
        longest_streak: Highest streak_count ever reached.
        category: Tag used to group items for difficulty calibration.
    """

    id: str
    title: str = ""
    category: str = ""
    mastery: int = MasteryLevel.NOT_LEARNED
    total_reviews: int = 0
    average_score: float = 0.0
    streak_count: int = 0
    longest_streak: int = 0
    last_practiced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def calibration_group(self) -> str:
        return self.category or UNCATEGORIZED


@dataclass(frozen=True)
class ReviewPlan:
    """
    One scheduled (and possibly attempted) review of an item.

    ``score``, ``confidence``, ``time_spent`` (seconds) and ``completed_at``
    are only set once the plan is completed.
    """

    id: str
    item_id: str
    scheduled_at: datetime
    status: ReviewStatus = ReviewStatus.PENDING
    interval_level: IntervalLevel = IntervalLevel.FIRST
    ease_factor: float = DEFAULT_EASE_FACTOR
    difficulty_adjustment: float = DEFAULT_DIFFICULTY_ADJUSTMENT
    score: int | None = None
    confidence: ConfidenceLevel | None = None
    time_spent: int | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ReviewStatistics:
    """Summary of an item's completed reviews."""

    total_reviews: int
    average_score: float
    completion_rate: float
    # Mean of (scheduled_at - completed_at): positive means finished early.
    average_interval: timedelta
    current_streak: int
    longest_streak: int
    reviews_this_week: int
    reviews_this_month: int
