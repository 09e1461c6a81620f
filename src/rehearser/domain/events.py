"""Domain events for the review lifecycle.

The engine publishes one event per committed write so interested
subscribers can refresh exactly what changed instead of reloading the
whole dataset.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanCreated:
    """Emitted after an item and its first plan are persisted."""

    item_id: str
    plan_id: str


@dataclass(frozen=True)
class ReviewCompleted:
    item_id: str
    completed_plan_id: str
    new_plan_id: str
    score: int


@dataclass(frozen=True)
class ReviewSkipped:
    """Emitted for both skip branches; ``hard`` tells them apart."""

    item_id: str
    plan_id: str
    next_plan_id: str
    hard: bool


@dataclass(frozen=True)
class ReviewPostponed:
    item_id: str
    plan_id: str
    days: int


@dataclass(frozen=True)
class DifficultyCalibrated:
    category: str
    factor: float
    plans_adjusted: int


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------

EventHandler = Callable[[Any], None]


class EventBus:
    """Simple in-process event bus.

    Subscribers register for a specific event type. When that event is
    published, all registered handlers are invoked. A failing handler
    logs the error but does not prevent remaining handlers from running.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[EventHandler]] = {}

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        """Register *handler* for *event_type*."""
        self._subscribers.setdefault(event_type, []).append(handler)

    def publish(self, event: Any) -> None:
        """Dispatch *event* to all registered handlers for its type."""
        for handler in list(self._subscribers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %s failed for %s",
                    getattr(handler, "__name__", handler),
                    type(event).__name__,
                )
