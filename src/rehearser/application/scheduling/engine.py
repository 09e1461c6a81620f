"""
Scheduling Engine: application layer orchestrator for review writes.

Every operation reads current state from the record store, computes the next
state with the SM-2 rules in ``sm2`` and commits all resulting upserts as one
transaction. Events are published only after the commit succeeds.
"""

import logging
from dataclasses import replace
from datetime import timedelta

from rehearser.application.config import AppConfig
from rehearser.application.id_service import generate_plan_id
from rehearser.domain.constants import (
    DEFAULT_DIFFICULTY_ADJUSTMENT,
    DEFAULT_EASE_FACTOR,
    INITIAL_INTERVAL_DAYS,
    POSTPONE_DIFFICULTY_FACTOR,
    SOFT_SKIP_STEP_MINUTES,
)
from rehearser.domain.errors import (
    InvalidScore,
    MissingRelation,
    PersistenceFailure,
    PlanAlreadyClosed,
    PlanNotFound,
)
from rehearser.domain.events import (
    EventBus,
    PlanCreated,
    ReviewCompleted,
    ReviewPostponed,
    ReviewSkipped,
)
from rehearser.domain.scheduling.models import (
    ConfidenceLevel,
    IntervalLevel,
    Item,
    ReviewPlan,
    ReviewStatus,
)
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore, Transaction

from . import sm2
from .clock import Clock, start_of_day, start_of_tomorrow, system_clock
from .locks import ItemLocks

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """
    Computes and commits review lifecycle transitions.

    Follows Dependency Inversion: depends on the RecordStore abstraction,
    not a concrete adapter. Writes on one item are serialized through
    ``locks``; inside the lock the acted-upon plan is re-read from the store,
    so a stale snapshot from the caller cannot cause lost updates. Each
    transaction also expects the acted-upon plan to still have the status
    read here; the store refuses it otherwise, which catches writers in
    other processes that this lock cannot see.
    """

    def __init__(
        self,
        store: RecordStore,
        events: EventBus | None = None,
        clock: Clock | None = None,
        config: AppConfig | None = None,
        locks: ItemLocks | None = None,
    ):
        """
        Args:
            store: The repository (port) holding items and plans.
            events: Bus receiving one event per committed write.
            clock: Source of "now"; defaults to local wall-clock time.
            config: Scheduling policy (strict scores, difficulty bounds).
            locks: Lock registry shared with other writers of the same store.
        """
        self._store = store
        self._events = events or EventBus()
        self._clock = clock or system_clock
        self._config = config or AppConfig()
        self._locks = locks or ItemLocks()

    @property
    def events(self) -> EventBus:
        return self._events

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_initial_plan(self, item: Item) -> ReviewPlan:
        """
        Persist ``item`` together with its first pending plan.

        The item's review counters are reset; it may or may not already
        exist in the store.

        Raises:
            PersistenceFailure: Nothing was saved.
        """
        now = self._clock()
        with self._locks.item(item.id):
            prepared = replace(
                item,
                total_reviews=0,
                average_score=0.0,
                streak_count=0,
                created_at=item.created_at or now,
                updated_at=now,
            )
            plan = ReviewPlan(
                id=generate_plan_id(),
                item_id=item.id,
                scheduled_at=now + timedelta(days=INITIAL_INTERVAL_DAYS),
                status=ReviewStatus.PENDING,
                interval_level=IntervalLevel.FIRST,
                ease_factor=DEFAULT_EASE_FACTOR,
                difficulty_adjustment=DEFAULT_DIFFICULTY_ADJUSTMENT,
            )
            self._commit("initial review plan", Transaction(items=[prepared], plans=[plan]))

        logger.info(f"Scheduled first review of {item.id} for {plan.scheduled_at:%Y-%m-%d %H:%M}")
        self._events.publish(PlanCreated(item_id=item.id, plan_id=plan.id))
        return plan

    def complete_review(
        self,
        plan: ReviewPlan,
        score: int,
        confidence: ConfidenceLevel | int = ConfidenceLevel.MEDIUM,
        time_spent: float = 0,
    ) -> ReviewPlan | None:
        """
        Record an attempt on ``plan`` and schedule its successor.

        Args:
            plan: The plan being reviewed.
            score: Recall quality on the 0-5 scale.
            confidence: Learner's self-reported confidence.
            time_spent: Seconds spent on the attempt.

        Returns:
            The new pending plan. The original plan, unchanged and unsaved,
            when the score is out of range (permissive mode). None when the
            plan's item no longer exists.

        Raises:
            InvalidScore: Out-of-range score with ``strict_scores`` enabled.
            PlanNotFound: The plan is not in the store.
            PlanAlreadyClosed: The plan was already completed or skipped, possibly
                by another process between the read and the commit.
            PersistenceFailure: Nothing was saved.
        """
        if not sm2.is_valid_score(score):
            if self._config.strict_scores:
                raise InvalidScore(score)
            logger.warning(f"Ignoring review of {plan.id}: score {score} is outside 0-5")
            return plan

        now = self._clock()
        with self._locks.item(plan.item_id):
            current = self._reload_open_plan(plan)
            item = self._item_for(current)
            if item is None:
                return None

            outcome = sm2.schedule_next(
                current.interval_level,
                current.ease_factor,
                current.difficulty_adjustment,
                score,
            )
            completed = replace(
                current,
                status=ReviewStatus.COMPLETED,
                score=score,
                confidence=ConfidenceLevel(confidence),
                time_spent=int(round(time_spent)),
                completed_at=now,
            )
            successor = ReviewPlan(
                id=generate_plan_id(),
                item_id=item.id,
                scheduled_at=outcome.due_from(now),
                status=ReviewStatus.PENDING,
                interval_level=outcome.interval_level,
                ease_factor=outcome.ease_factor,
                difficulty_adjustment=current.difficulty_adjustment,
            )
            updated_item = sm2.apply_completion(item, score, now)

            self._commit(
                "completed review",
                Transaction(items=[updated_item], plans=[completed, successor]).expect(current),
            )

        logger.info(
            f"Completed {current.id} (score {score}); next review of {item.id} at level "
            f"{outcome.interval_level.name.lower()} in {outcome.interval.total_seconds() / 86400:.1f} days"
        )
        self._events.publish(
            ReviewCompleted(
                item_id=item.id,
                completed_plan_id=current.id,
                new_plan_id=successor.id,
                score=score,
            )
        )
        return successor

    def skip_review(self, plan: ReviewPlan) -> ReviewPlan | None:
        """
        Push ``plan`` back.

        Soft skip: when other reviews are pending today and one minute after
        the latest of them is still today, the same plan moves there and
        stays pending. Hard skip: otherwise the plan is marked skipped and a
        sibling with identical level, ease and difficulty is scheduled for
        the start of tomorrow.

        Returns:
            The plan now carrying the item's next review, or None when the
            plan's item no longer exists.
        """
        now = self._clock()
        today = start_of_day(now)
        tomorrow = start_of_tomorrow(now)

        with self._locks.item(plan.item_id):
            current = self._reload_open_plan(plan)
            item = self._item_for(current)
            if item is None:
                return None

            # The acted-upon plan may itself be the latest one today.
            tail = self._store.fetch_plans(
                PlanQuery(
                    statuses=(ReviewStatus.PENDING,),
                    scheduled_from=today,
                    scheduled_before=tomorrow,
                    descending=True,
                ),
                limit=2,
            )
            latest = next((p for p in tail if p.id != current.id), None)
            candidate = None
            if latest is not None:
                candidate = latest.scheduled_at + timedelta(minutes=SOFT_SKIP_STEP_MINUTES)

            if candidate is not None and candidate < tomorrow:
                next_plan = replace(current, status=ReviewStatus.PENDING, scheduled_at=candidate)
                self._commit("skipped review", Transaction(plans=[next_plan]).expect(current))
                hard = False
            else:
                skipped = replace(current, status=ReviewStatus.SKIPPED)
                next_plan = ReviewPlan(
                    id=generate_plan_id(),
                    item_id=item.id,
                    scheduled_at=tomorrow,
                    status=ReviewStatus.PENDING,
                    interval_level=current.interval_level,
                    ease_factor=current.ease_factor,
                    difficulty_adjustment=current.difficulty_adjustment,
                )
                self._commit(
                    "skipped review",
                    Transaction(plans=[skipped, next_plan]).expect(current),
                )
                hard = True

        logger.info(
            f"{'Hard' if hard else 'Soft'} skip of {current.id}; "
            f"next review at {next_plan.scheduled_at:%Y-%m-%d %H:%M}"
        )
        self._events.publish(
            ReviewSkipped(
                item_id=item.id,
                plan_id=current.id,
                next_plan_id=next_plan.id,
                hard=hard,
            )
        )
        return next_plan

    def postpone_review(self, plan: ReviewPlan, days: int) -> bool:
        """
        Defer ``plan`` by ``days`` and ease its future intervals slightly.

        The same plan is reused and marked postponed. Returns False instead of
        raising when the plan cannot be postponed or the commit fails.
        """
        if days < 0:
            logger.warning(f"Refusing to postpone {plan.id} by {days} days")
            return False

        with self._locks.item(plan.item_id):
            current = self._store.get_plan(plan.id)
            if current is None:
                logger.warning(f"Cannot postpone {plan.id}: plan not found")
                return False
            if current.status.is_terminal:
                logger.warning(f"Cannot postpone {plan.id}: already {current.status.value}")
                return False

            postponed = replace(
                current,
                status=ReviewStatus.POSTPONED,
                scheduled_at=current.scheduled_at + timedelta(days=days),
                difficulty_adjustment=max(
                    self._config.difficulty_floor,
                    current.difficulty_adjustment * POSTPONE_DIFFICULTY_FACTOR,
                ),
            )
            try:
                self._commit("postponed review", Transaction(plans=[postponed]).expect(current))
            except (PersistenceFailure, PlanAlreadyClosed, PlanNotFound) as e:
                logger.warning(f"Cannot postpone {plan.id}: {e}")
                return False

        logger.info(f"Postponed {current.id} by {days} days")
        self._events.publish(ReviewPostponed(item_id=current.item_id, plan_id=current.id, days=days))
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reload_open_plan(self, plan: ReviewPlan) -> ReviewPlan:
        current = self._store.get_plan(plan.id)
        if current is None:
            raise PlanNotFound(plan.id)
        if current.status.is_terminal:
            raise PlanAlreadyClosed(plan.id, current.status.value)
        return current

    def _item_for(self, plan: ReviewPlan) -> Item | None:
        item = self._store.get_item(plan.item_id)
        if item is None:
            logger.warning(str(MissingRelation(plan.id, plan.item_id)))
        return item

    def _commit(self, operation: str, transaction: Transaction) -> None:
        try:
            self._store.save(transaction)
        except PersistenceFailure as e:
            logger.error(f"Failed to save {operation}: {e}")
            raise PersistenceFailure(operation, e.cause or e) from e
