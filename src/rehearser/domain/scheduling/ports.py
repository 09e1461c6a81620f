"""
Ports (interfaces) for the record store.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from .models import Item, ReviewPlan, ReviewStatus


@dataclass(frozen=True)
class PlanQuery:
    """
    Predicate and ordering for fetching review plans.

    Every criterion is optional; unset criteria match everything. Results are
    ordered by ``scheduled_at`` (ties broken by id).
    """

    statuses: tuple[ReviewStatus, ...] | None = None
    item_ids: tuple[str, ...] | None = None
    scheduled_from: datetime | None = None  # inclusive
    scheduled_before: datetime | None = None  # exclusive
    scheduled_until: datetime | None = None  # inclusive
    descending: bool = False

    def matches(self, plan: ReviewPlan) -> bool:
        if self.statuses is not None and plan.status not in self.statuses:
            return False
        if self.item_ids is not None and plan.item_id not in self.item_ids:
            return False
        if self.scheduled_from is not None and plan.scheduled_at < self.scheduled_from:
            return False
        if self.scheduled_before is not None and plan.scheduled_at >= self.scheduled_before:
            return False
        if self.scheduled_until is not None and plan.scheduled_at > self.scheduled_until:
            return False
        return True

    def sort_key(self, plan: ReviewPlan) -> tuple[datetime, str]:
        return (plan.scheduled_at, plan.id)


@dataclass
class Transaction:
    """
    All item and plan upserts produced by one engine operation.

    ``expected`` maps plan ids to the status the stored plan must still have
    when the save commits; a mismatch rejects the whole transaction.
    """

    items: list[Item] = field(default_factory=list)
    plans: list[ReviewPlan] = field(default_factory=list)
    expected: dict[str, ReviewStatus] = field(default_factory=dict)

    def put_plan(self, plan: ReviewPlan) -> "Transaction":
        self.plans.append(plan)
        return self

    def expect(self, plan: ReviewPlan) -> "Transaction":
        """Only commit if ``plan`` is still stored with its current status."""
        self.expected[plan.id] = plan.status
        return self

    def __bool__(self) -> bool:
        return bool(self.items or self.plans)


class RecordStore(ABC):
    """
    Port for durable item and review-plan storage.

    Implementations:
        - InMemoryRecordStore: arena dictionaries with an item index.
        - SqlRecordStore: SQLAlchemy-backed relational storage.
    """

    @abstractmethod
    def get_item(self, item_id: str) -> Item | None:
        pass

    @abstractmethod
    def get_plan(self, plan_id: str) -> ReviewPlan | None:
        pass

    @abstractmethod
    def fetch_items(self) -> list[Item]:
        """
        Fetch every item.

        Returns:
            Items ordered by id.
        """
        pass

    @abstractmethod
    def fetch_plans(self, query: PlanQuery, limit: int | None = None) -> list[ReviewPlan]:
        """
        Fetch review plans matching the query.

        Args:
            query: Predicate and sort direction.
            limit: Maximum number of plans to return.

        Returns:
            Plans ordered by scheduled_at, then id.
        """
        pass

    @abstractmethod
    def save(self, transaction: Transaction) -> None:
        """
        Commit every upsert in the transaction, or none of them.

        Raises:
            PersistenceFailure: The commit did not succeed. Nothing from the
                transaction is visible afterwards.
            PlanAlreadyClosed: A plan in ``transaction.expected`` no longer
                has the expected status, typically because another process
                acted on it first. Nothing is saved.
            PlanNotFound: A plan in ``transaction.expected`` is not stored.
        """
        pass
