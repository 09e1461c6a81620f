"""
In-Memory Record Store: infrastructure adapter keeping entities in process.

Implements RecordStore with arena dictionaries keyed by id and an
``item_id -> plan ids`` index. Useful for tests and throwaway sessions.
"""

import logging
import threading

from rehearser.domain.errors import PersistenceFailure, PlanAlreadyClosed, PlanNotFound
from rehearser.domain.scheduling.models import Item, ReviewPlan
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore, Transaction

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """
    Stores frozen entities; readers always get committed versions.

    A transaction is validated completely before anything is applied, so a
    rejected save leaves the arenas untouched.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, Item] = {}
        self._plans: dict[str, ReviewPlan] = {}
        self._plans_by_item: dict[str, set[str]] = {}

    def get_item(self, item_id: str) -> Item | None:
        with self._lock:
            return self._items.get(item_id)

    def get_plan(self, plan_id: str) -> ReviewPlan | None:
        with self._lock:
            return self._plans.get(plan_id)

    def fetch_items(self) -> list[Item]:
        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda i: i.id)

    def fetch_plans(self, query: PlanQuery, limit: int | None = None) -> list[ReviewPlan]:
        with self._lock:
            if query.item_ids is not None:
                ids = set()
                for item_id in query.item_ids:
                    ids |= self._plans_by_item.get(item_id, set())
                candidates = [self._plans[i] for i in ids]
            else:
                candidates = list(self._plans.values())

        matched = sorted(
            (p for p in candidates if query.matches(p)),
            key=query.sort_key,
            reverse=query.descending,
        )
        if limit is not None:
            matched = matched[:limit]
        return matched

    def save(self, transaction: Transaction) -> None:
        with self._lock:
            self._validate(transaction)
            for item in transaction.items:
                self._items[item.id] = item
            for plan in transaction.plans:
                previous = self._plans.get(plan.id)
                if previous is not None and previous.item_id != plan.item_id:
                    self._plans_by_item[previous.item_id].discard(plan.id)
                self._plans[plan.id] = plan
                self._plans_by_item.setdefault(plan.item_id, set()).add(plan.id)
        logger.debug(
            f"Committed {len(transaction.items)} items and {len(transaction.plans)} plans"
        )

    def _validate(self, transaction: Transaction) -> None:
        for plan_id, status in transaction.expected.items():
            stored = self._plans.get(plan_id)
            if stored is None:
                raise PlanNotFound(plan_id)
            if stored.status is not status:
                raise PlanAlreadyClosed(plan_id, stored.status.value)

        incoming_items = {item.id for item in transaction.items}
        for plan in transaction.plans:
            if plan.item_id not in incoming_items and plan.item_id not in self._items:
                raise PersistenceFailure(
                    "transaction",
                    ValueError(f"plan {plan.id} references unknown item {plan.item_id}"),
                )
