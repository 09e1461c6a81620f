"""
Statistics aggregator for an item's review history.

Stateless apart from the injected store and clock; never writes.
"""

from datetime import timedelta
from statistics import fmean

from rehearser.domain.constants import MONTH_DAYS, WEEK_DAYS
from rehearser.domain.scheduling.models import (
    Item,
    ReviewPlan,
    ReviewStatistics,
    ReviewStatus,
)
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore

from .clock import Clock, system_clock


class StatisticsAggregator:
    """
    Rolls an item's completed plans into summary metrics.
    """

    def __init__(self, store: RecordStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or system_clock

    def get_review_statistics(self, item: Item) -> ReviewStatistics | None:
        """
        Summarize the item's completed reviews.

        Returns:
            None when the item has no completed plan yet, so callers can show
            "no data" instead of a row of zeros.
        """
        plans = self._store.fetch_plans(PlanQuery(item_ids=(item.id,)))
        completed = [p for p in plans if p.status is ReviewStatus.COMPLETED]
        if not completed:
            return None

        # Streak counters live on the item; prefer the stored version.
        item = self._store.get_item(item.id) or item
        scores = [p.score for p in completed if p.score is not None]

        return ReviewStatistics(
            total_reviews=len(completed),
            average_score=fmean(scores) if scores else 0.0,
            completion_rate=len(completed) / len(plans),
            average_interval=self._average_interval(completed),
            current_streak=item.streak_count,
            longest_streak=max(item.longest_streak, item.streak_count),
            reviews_this_week=self._completed_within(completed, timedelta(days=WEEK_DAYS)),
            reviews_this_month=self._completed_within(completed, timedelta(days=MONTH_DAYS)),
        )

    def _average_interval(self, completed: list[ReviewPlan]) -> timedelta:
        """
        Mean of (scheduled_at - completed_at).

        This measures how early or late reviews were done relative to their
        due time, not the spacing between reviews.
        """
        offsets = [p.scheduled_at - p.completed_at for p in completed if p.completed_at]
        if not offsets:
            return timedelta(0)
        return sum(offsets, timedelta(0)) / len(offsets)

    def _completed_within(self, completed: list[ReviewPlan], window: timedelta) -> int:
        since = self._clock() - window
        return sum(1 for p in completed if p.completed_at and p.completed_at >= since)
