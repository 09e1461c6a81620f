"""
Difficulty calibrator: batch re-weighting of pending plans per category.

Categories whose learners score well get longer intervals (factor 1.05),
categories that go badly get shorter ones (factor 0.95). Each run compounds
on the previous one, bounded by the configured difficulty floor and ceiling.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from statistics import fmean

from rehearser.application.config import AppConfig
from rehearser.domain.constants import (
    EASY_CATEGORY_FACTOR,
    EASY_CATEGORY_MEAN,
    HARD_CATEGORY_FACTOR,
    HARD_CATEGORY_MEAN,
)
from rehearser.domain.errors import PersistenceFailure, PlanAlreadyClosed, PlanNotFound
from rehearser.domain.events import DifficultyCalibrated, EventBus
from rehearser.domain.scheduling.models import ReviewStatus
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore, Transaction

from . import sm2
from .locks import ItemLocks

logger = logging.getLogger(__name__)


@dataclass
class CategoryCalibration:
    category: str
    samples: int
    mean_score: float
    factor: float
    plans_adjusted: int = 0


@dataclass
class CalibrationReport:
    """Outcome of one calibration run."""

    categories: list[CategoryCalibration] = field(default_factory=list)
    # Categories left alone for lack of samples, with their sample count.
    insufficient: dict[str, int] = field(default_factory=dict)

    @property
    def plans_adjusted(self) -> int:
        return sum(c.plans_adjusted for c in self.categories)


def category_factor(mean_score: float) -> float:
    if mean_score >= EASY_CATEGORY_MEAN:
        return EASY_CATEGORY_FACTOR
    if mean_score <= HARD_CATEGORY_MEAN:
        return HARD_CATEGORY_FACTOR
    return 1.0


class DifficultyCalibrator:
    """
    Batch job deriving per-category difficulty multipliers from history.

    Not idempotent: running it twice applies the factors twice.
    """

    def __init__(
        self,
        store: RecordStore,
        events: EventBus | None = None,
        config: AppConfig | None = None,
        locks: ItemLocks | None = None,
    ):
        self._store = store
        self._events = events or EventBus()
        self._config = config or AppConfig()
        self._locks = locks or ItemLocks()

    def adjust_difficulty_based_on_performance(self) -> CalibrationReport:
        """
        Re-weight every pending plan by its category's recent accuracy.

        Raises:
            PersistenceFailure: No plan was adjusted.
        """
        items = {item.id: item for item in self._store.fetch_items()}
        completed = self._store.fetch_plans(PlanQuery(statuses=(ReviewStatus.COMPLETED,)))

        scores: dict[str, list[int]] = defaultdict(list)
        for plan in completed:
            item = items.get(plan.item_id)
            if item is None or plan.score is None:
                continue
            scores[item.calibration_group].append(plan.score)

        report = CalibrationReport()
        by_category: dict[str, CategoryCalibration] = {}
        for category in sorted(scores):
            samples = scores[category]
            if len(samples) < self._config.min_calibration_samples:
                report.insufficient[category] = len(samples)
                continue
            mean = fmean(samples)
            entry = CategoryCalibration(
                category=category,
                samples=len(samples),
                mean_score=mean,
                factor=category_factor(mean),
            )
            report.categories.append(entry)
            by_category[category] = entry

        targets = {
            item.id: by_category[item.calibration_group]
            for item in items.values()
            if item.calibration_group in by_category
            and by_category[item.calibration_group].factor != 1.0
        }
        if not targets:
            logger.info("Calibration found no category to adjust")
            return report

        with self._locks.hold(targets):
            pending = self._store.fetch_plans(
                PlanQuery(statuses=(ReviewStatus.PENDING,), item_ids=tuple(sorted(targets)))
            )
            transaction = Transaction()
            for plan in pending:
                entry = targets[plan.item_id]
                adjusted = sm2.clamp(
                    plan.difficulty_adjustment * entry.factor,
                    self._config.difficulty_floor,
                    self._config.difficulty_ceiling,
                )
                transaction.put_plan(replace(plan, difficulty_adjustment=adjusted)).expect(plan)
                entry.plans_adjusted += 1

            if transaction:
                try:
                    self._store.save(transaction)
                except PersistenceFailure as e:
                    logger.error(f"Failed to save difficulty calibration: {e}")
                    raise PersistenceFailure("difficulty calibration", e.cause or e) from e
                except (PlanAlreadyClosed, PlanNotFound) as e:
                    # A plan changed under us; a rerun sees the new state.
                    logger.error(f"Difficulty calibration raced a review: {e}")
                    raise PersistenceFailure("difficulty calibration", e) from e

        for entry in report.categories:
            if entry.factor == 1.0:
                continue
            logger.info(
                f"Calibrated '{entry.category}': mean {entry.mean_score:.2f} over "
                f"{entry.samples} reviews, factor {entry.factor}, {entry.plans_adjusted} plans"
            )
            self._events.publish(
                DifficultyCalibrated(
                    category=entry.category,
                    factor=entry.factor,
                    plans_adjusted=entry.plans_adjusted,
                )
            )
        return report
