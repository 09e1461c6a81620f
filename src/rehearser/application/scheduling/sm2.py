"""
SM-2 variant used to reschedule a review after each attempt.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from rehearser.domain.constants import (
    EXPERIENCED_REVIEW_COUNT,
    GOOD_SCORE,
    MAX_EASE_FACTOR,
    MAX_INTERVAL_DAYS,
    MAX_SCORE,
    MIN_EASE_FACTOR,
    MIN_SCORE,
    PASSING_SCORE,
)
from rehearser.domain.scheduling.models import IntervalLevel, Item, MasteryLevel


def is_valid_score(score: int) -> bool:
    return MIN_SCORE <= score <= MAX_SCORE


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def next_ease_factor(ease_factor: float, score: int) -> float:
    """
    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), clipped to [1.3, 10.0].

    An out-of-range score leaves the ease factor untouched.
    """
    if not is_valid_score(score):
        return ease_factor
    miss = MAX_SCORE - score
    adjustment = 0.1 - miss * (0.08 + miss * 0.02)
    return clamp(ease_factor + adjustment, MIN_EASE_FACTOR, MAX_EASE_FACTOR)


def next_interval_level(level: IntervalLevel, score: int) -> IntervalLevel:
    if score < PASSING_SCORE:
        return IntervalLevel.FIRST
    if score >= GOOD_SCORE:
        return level.advance()
    return level


def interval_days(level: IntervalLevel, ease_factor: float, difficulty_adjustment: float) -> float:
    """Base ladder days scaled by ease and difficulty, capped at one year."""
    return min(level.days * ease_factor * difficulty_adjustment, float(MAX_INTERVAL_DAYS))


def mastery_delta(mastery: int, score: int, total_reviews: int) -> int:
    """
    Mastery shift for one completion.

    ``total_reviews`` already counts the completion being scored. Experienced
    items (more than five reviews) that pass get a bonus, but the combined
    shift never exceeds a single step up.
    """
    if score >= 5:
        delta = 1
    elif score == 4:
        delta = 1 if mastery < MasteryLevel.PROFICIENT else 0
    elif score == 3:
        delta = 0
    elif score == 2:
        delta = -1
    else:
        delta = -2

    if total_reviews > EXPERIENCED_REVIEW_COUNT and score >= PASSING_SCORE:
        delta = min(delta + 1, 1)
    return delta


@dataclass(frozen=True)
class ScheduleOutcome:
    ease_factor: float
    interval_level: IntervalLevel
    interval: timedelta

    def due_from(self, now: datetime) -> datetime:
        return now + self.interval


def schedule_next(
    level: IntervalLevel,
    ease_factor: float,
    difficulty_adjustment: float,
    score: int,
) -> ScheduleOutcome:
    new_ease = next_ease_factor(ease_factor, score)
    new_level = next_interval_level(level, score)
    days = interval_days(new_level, new_ease, difficulty_adjustment)
    return ScheduleOutcome(
        ease_factor=new_ease,
        interval_level=new_level,
        interval=timedelta(days=days),
    )


def apply_completion(item: Item, score: int, now: datetime) -> Item:
    """Roll one completion score into the item's aggregates."""
    total = item.total_reviews + 1
    average = (item.average_score * (total - 1) + score) / total
    streak = item.streak_count + 1 if score >= GOOD_SCORE else 0
    mastery = int(
        clamp(
            item.mastery + mastery_delta(item.mastery, score, total),
            MasteryLevel.NOT_LEARNED,
            MasteryLevel.MASTERED,
        )
    )
    return replace(
        item,
        total_reviews=total,
        average_score=average,
        streak_count=streak,
        longest_streak=max(item.longest_streak, streak),
        mastery=mastery,
        last_practiced_at=now,
        updated_at=now,
    )
