from datetime import datetime, timedelta

import pytest

from rehearser.application.config import AppConfig
from rehearser.application.factory import build_services
from rehearser.application.id_service import generate_item_id, generate_plan_id
from rehearser.domain import events as ev
from rehearser.domain.scheduling.models import Item, ReviewPlan
from rehearser.domain.scheduling.ports import Transaction
from rehearser.infrastructure.adapters.memory_store import InMemoryRecordStore


class FixedClock:
    """Deterministic stand-in for datetime.now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 10, 0))


@pytest.fixture
def config():
    return AppConfig(backend="memory")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def services(config, store, clock):
    return build_services(config, store=store, clock=clock)


@pytest.fixture
def engine(services):
    return services.engine


@pytest.fixture
def make_item(store):
    """Persist an item directly, bypassing the engine."""

    def _make(**fields) -> Item:
        item = Item(id=generate_item_id(), **fields)
        store.save(Transaction(items=[item]))
        return item

    return _make


@pytest.fixture
def make_plan(store):
    """Persist a plan directly, bypassing the engine."""

    def _make(item: Item, scheduled_at: datetime, **fields) -> ReviewPlan:
        plan = ReviewPlan(
            id=generate_plan_id(), item_id=item.id, scheduled_at=scheduled_at, **fields
        )
        store.save(Transaction(plans=[plan]))
        return plan

    return _make


@pytest.fixture
def recorded_events(services):
    """Collect every event published on the services' bus."""
    seen = []
    for event_type in (
        ev.PlanCreated,
        ev.ReviewCompleted,
        ev.ReviewSkipped,
        ev.ReviewPostponed,
        ev.DifficultyCalibrated,
    ):
        services.events.subscribe(event_type, seen.append)
    return seen
