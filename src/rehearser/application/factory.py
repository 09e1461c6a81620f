"""
Service Factory
Centralizes the logic for selecting the record store and wiring the services.
"""

from dataclasses import dataclass

from rehearser.application.config import AppConfig
from rehearser.application.scheduling import (
    DifficultyCalibrator,
    DueQuery,
    ItemLocks,
    SchedulingEngine,
    StatisticsAggregator,
)
from rehearser.application.scheduling.clock import Clock, system_clock
from rehearser.domain.events import EventBus
from rehearser.domain.scheduling.ports import RecordStore
from rehearser.infrastructure.adapters.memory_store import InMemoryRecordStore
from rehearser.infrastructure.adapters.sql_store import SqlRecordStore


def get_record_store(config: AppConfig) -> RecordStore:
    """
    Returns the RecordStore implementation selected by config.
    """
    if config.backend == "memory":
        return InMemoryRecordStore()

    store = SqlRecordStore(config.database_url)
    store.init_db()
    return store


@dataclass
class Services:
    """Every scheduling service sharing one store, bus and lock registry."""

    store: RecordStore
    events: EventBus
    engine: SchedulingEngine
    due: DueQuery
    statistics: StatisticsAggregator
    calibrator: DifficultyCalibrator


def build_services(
    config: AppConfig,
    store: RecordStore | None = None,
    clock: Clock | None = None,
) -> Services:
    store = store or get_record_store(config)
    clock = clock or system_clock
    events = EventBus()
    locks = ItemLocks()
    return Services(
        store=store,
        events=events,
        engine=SchedulingEngine(store, events=events, clock=clock, config=config, locks=locks),
        due=DueQuery(store, clock=clock),
        statistics=StatisticsAggregator(store, clock=clock),
        calibrator=DifficultyCalibrator(store, events=events, config=config, locks=locks),
    )
