"""Read-only projections over pending reviews."""

from datetime import datetime

from rehearser.domain.scheduling.models import Item, ReviewPlan, ReviewStatus
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore

from .clock import Clock, start_of_day, start_of_tomorrow, system_clock

_PENDING = (ReviewStatus.PENDING,)


class DueQuery:
    """
    Pending-review queries, all ordered by scheduled time.

    Reads are not synchronized with writes; re-fetch before acting on a
    result if freshness matters.
    """

    def __init__(self, store: RecordStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or system_clock

    def get_due_reviews(self, limit: int | None = None) -> list[ReviewPlan]:
        """Pending plans whose scheduled time has passed."""
        query = PlanQuery(statuses=_PENDING, scheduled_until=self._clock())
        return self._store.fetch_plans(query, limit=limit)

    def get_today_reviews(self) -> list[ReviewPlan]:
        now = self._clock()
        query = PlanQuery(
            statuses=_PENDING,
            scheduled_from=start_of_day(now),
            scheduled_before=start_of_tomorrow(now),
        )
        return self._store.fetch_plans(query)

    def get_overdue_reviews(self) -> list[ReviewPlan]:
        """Pending plans scheduled before today started."""
        query = PlanQuery(statuses=_PENDING, scheduled_before=start_of_day(self._clock()))
        return self._store.fetch_plans(query)

    def predict_next_review_date(self, item: Item) -> datetime | None:
        plans = self._store.fetch_plans(
            PlanQuery(statuses=_PENDING, item_ids=(item.id,)),
            limit=1,
        )
        return plans[0].scheduled_at if plans else None
