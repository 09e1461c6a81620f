import threading
from dataclasses import replace
from datetime import datetime

import pytest

from rehearser.application.config import AppConfig
from rehearser.application.scheduling import SchedulingEngine
from rehearser.domain.errors import PersistenceFailure, PlanAlreadyClosed, PlanNotFound
from rehearser.domain.scheduling.models import (
    ConfidenceLevel,
    IntervalLevel,
    Item,
    ReviewPlan,
    ReviewStatus,
)
from rehearser.domain.scheduling.ports import PlanQuery, Transaction
from rehearser.infrastructure.adapters.sql_store import SqlRecordStore

DAY = datetime(2026, 3, 11, 9, 0)


@pytest.fixture
def sql_store():
    store = SqlRecordStore("sqlite://")
    store.init_db()
    return store


def test_roundtrip_preserves_enums_and_times(sql_store):
    item = Item(
        id="item_a",
        title="Dijkstra",
        category="graphs",
        mastery=2,
        total_reviews=4,
        average_score=3.5,
        streak_count=1,
        longest_streak=2,
        last_practiced_at=datetime(2026, 3, 10, 21, 15, 30, 123456),
    )
    plan = ReviewPlan(
        id="plan_a",
        item_id="item_a",
        scheduled_at=DAY,
        status=ReviewStatus.COMPLETED,
        interval_level=IntervalLevel.FIFTH,
        ease_factor=2.36,
        difficulty_adjustment=0.95,
        score=3,
        confidence=ConfidenceLevel.LOW,
        time_spent=300,
        completed_at=DAY,
    )
    sql_store.save(Transaction(items=[item], plans=[plan]))

    assert sql_store.get_item("item_a") == item
    assert sql_store.get_plan("plan_a") == plan
    assert sql_store.get_item("item_missing") is None
    assert sql_store.get_plan("plan_missing") is None


def test_fetch_plans_filters(sql_store):
    sql_store.save(
        Transaction(
            items=[Item(id="item_a"), Item(id="item_b", category="dp")],
            plans=[
                ReviewPlan(id="plan_1", item_id="item_a", scheduled_at=datetime(2026, 3, 10, 8)),
                ReviewPlan(id="plan_2", item_id="item_a", scheduled_at=datetime(2026, 3, 11, 8)),
                ReviewPlan(
                    id="plan_3",
                    item_id="item_b",
                    scheduled_at=datetime(2026, 3, 10, 9),
                    status=ReviewStatus.SKIPPED,
                ),
            ],
        )
    )

    pending = sql_store.fetch_plans(PlanQuery(statuses=(ReviewStatus.PENDING,)))
    assert [p.id for p in pending] == ["plan_1", "plan_2"]

    window = sql_store.fetch_plans(
        PlanQuery(scheduled_from=datetime(2026, 3, 10), scheduled_before=datetime(2026, 3, 11))
    )
    assert [p.id for p in window] == ["plan_1", "plan_3"]

    until = sql_store.fetch_plans(PlanQuery(scheduled_until=datetime(2026, 3, 10, 8)))
    assert [p.id for p in until] == ["plan_1"]

    latest = sql_store.fetch_plans(PlanQuery(item_ids=("item_a",), descending=True), limit=1)
    assert [p.id for p in latest] == ["plan_2"]



def test_failed_transaction_rolls_back(sql_store):
    txn = Transaction(
        items=[Item(id="item_c")],
        plans=[ReviewPlan(id="plan_x", item_id="item_missing", scheduled_at=DAY)],
    )

    with pytest.raises(PersistenceFailure):
        sql_store.save(txn)

    assert sql_store.get_item("item_c") is None
    assert sql_store.get_plan("plan_x") is None


def test_file_database_persists_across_stores(tmp_path):
    url = f"sqlite:///{tmp_path / 'nested' / 'rehearser.db'}"
    first = SqlRecordStore(url)
    first.init_db()
    first.save(Transaction(items=[Item(id="item_a", title="Two Sum")]))

    second = SqlRecordStore(url)
    second.init_db()

    assert second.get_item("item_a").title == "Two Sum"


def test_engine_on_sql_store(sql_store):
    now = datetime(2026, 3, 10, 10, 0)
    engine = SchedulingEngine(sql_store, clock=lambda: now, config=AppConfig(backend="memory"))

    plan = engine.create_initial_plan(Item(id="item_a", title="Two Sum"))
    successor = engine.complete_review(plan, 5)

    assert sql_store.get_plan(plan.id).status is ReviewStatus.COMPLETED
    assert sql_store.get_plan(successor.id).interval_level is IntervalLevel.SECOND
    assert sql_store.get_item("item_a").total_reviews == 1


@pytest.fixture
def shared_file(tmp_path):
    url = f"sqlite:///{tmp_path / 'rehearser.db'}"
    store = SqlRecordStore(url)
    store.init_db()
    store.save(
        Transaction(
            items=[Item(id="item_a")],
            plans=[ReviewPlan(id="plan_1", item_id="item_a", scheduled_at=DAY)],
        )
    )
    return url


def test_stale_write_from_another_store_is_refused(shared_file):
    first, second = SqlRecordStore(shared_file), SqlRecordStore(shared_file)
    stale = second.get_plan("plan_1")

    done = replace(stale, status=ReviewStatus.COMPLETED, score=5, completed_at=DAY)
    first.save(
        Transaction(
            plans=[done, ReviewPlan(id="plan_2", item_id="item_a", scheduled_at=DAY)]
        ).expect(stale)
    )

    with pytest.raises(PlanAlreadyClosed) as excinfo:
        second.save(
            Transaction(
                plans=[
                    replace(done, score=1),
                    ReviewPlan(id="plan_3", item_id="item_a", scheduled_at=DAY),
                ]
            ).expect(stale)
        )

    assert excinfo.value.status == "completed"
    assert second.get_plan("plan_1").score == 5
    assert second.get_plan("plan_3") is None


def test_expected_plan_must_exist(sql_store):
    ghost = ReviewPlan(id="plan_ghost", item_id="item_a", scheduled_at=DAY)
    sql_store.save(Transaction(items=[Item(id="item_a")]))

    with pytest.raises(PlanNotFound):
        sql_store.save(Transaction(plans=[ghost]).expect(ghost))
    assert sql_store.get_plan("plan_ghost") is None


def test_engines_on_separate_stores_create_one_successor(shared_file):
    now = datetime(2026, 3, 11, 10, 0)
    # Both engines read the open plan before either commits.
    barrier = threading.Barrier(2)
    engines = []
    for _ in range(2):
        store = SqlRecordStore(shared_file)

        def save_after_both_read(transaction, save=store.save):
            barrier.wait()
            save(transaction)

        store.save = save_after_both_read
        engines.append(
            SchedulingEngine(store, clock=lambda: now, config=AppConfig(backend="memory"))
        )

    plan = SqlRecordStore(shared_file).get_plan("plan_1")
    outcomes = []

    def attempt(engine):
        try:
            outcomes.append(engine.complete_review(plan, 5))
        except PlanAlreadyClosed as e:
            outcomes.append(e)

    threads = [threading.Thread(target=attempt, args=(e,)) for e in engines]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    check = SqlRecordStore(shared_file)
    pending = check.fetch_plans(PlanQuery(statuses=(ReviewStatus.PENDING,)))
    assert sum(isinstance(o, PlanAlreadyClosed) for o in outcomes) == 1
    assert len(pending) == 1
    assert check.get_item("item_a").total_reviews == 1
