from datetime import datetime

import pytest

from rehearser.domain.errors import PersistenceFailure, PlanAlreadyClosed, PlanNotFound
from rehearser.domain.scheduling.models import Item, ReviewPlan, ReviewStatus
from rehearser.domain.scheduling.ports import PlanQuery, Transaction
from rehearser.infrastructure.adapters.memory_store import InMemoryRecordStore


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    store.save(
        Transaction(
            items=[Item(id="item_a", category="graphs"), Item(id="item_b", category="dp")],
            plans=[
                ReviewPlan(id="plan_2", item_id="item_a", scheduled_at=datetime(2026, 3, 12)),
                ReviewPlan(id="plan_1", item_id="item_a", scheduled_at=datetime(2026, 3, 11)),
                ReviewPlan(id="plan_3", item_id="item_b", scheduled_at=datetime(2026, 3, 11)),
            ],
        )
    )
    return store


def test_fetch_items(store):
    assert [i.id for i in store.fetch_items()] == ["item_a", "item_b"]


def test_fetch_plans_orders_by_time_then_id(store):
    plans = store.fetch_plans(PlanQuery())

    assert [p.id for p in plans] == ["plan_1", "plan_3", "plan_2"]


def test_fetch_plans_descending_with_limit(store):
    plans = store.fetch_plans(PlanQuery(descending=True), limit=2)

    assert [p.id for p in plans] == ["plan_2", "plan_3"]


def test_fetch_plans_by_item(store):
    plans = store.fetch_plans(PlanQuery(item_ids=("item_a",)))

    assert [p.id for p in plans] == ["plan_1", "plan_2"]


def test_save_upserts(store):
    plan = store.get_plan("plan_1")
    done = ReviewPlan(
        id=plan.id, item_id=plan.item_id, scheduled_at=plan.scheduled_at, status=ReviewStatus.COMPLETED
    )
    store.save(Transaction(plans=[done]))

    assert store.get_plan("plan_1").status is ReviewStatus.COMPLETED
    assert len(store.fetch_plans(PlanQuery(item_ids=("item_a",)))) == 2


def test_unknown_item_rejects_whole_transaction(store):
    txn = Transaction(
        items=[Item(id="item_c")],
        plans=[ReviewPlan(id="plan_x", item_id="item_missing", scheduled_at=datetime(2026, 3, 11))],
    )

    with pytest.raises(PersistenceFailure) as excinfo:
        store.save(txn)

    assert isinstance(excinfo.value.cause, ValueError)
    assert store.get_item("item_c") is None
    assert store.get_plan("plan_x") is None


def test_plan_may_reference_item_in_same_transaction():
    store = InMemoryRecordStore()
    store.save(
        Transaction(
            items=[Item(id="item_new")],
            plans=[ReviewPlan(id="plan_new", item_id="item_new", scheduled_at=datetime(2026, 3, 11))],
        )
    )

    assert store.get_plan("plan_new").item_id == "item_new"


def test_expected_status_must_still_hold(store):
    stale = store.get_plan("plan_1")
    done = ReviewPlan(
        id=stale.id, item_id=stale.item_id, scheduled_at=stale.scheduled_at, status=ReviewStatus.COMPLETED
    )
    store.save(Transaction(plans=[done]).expect(stale))

    # A second writer acting on the same stale snapshot is refused
    rewrite = ReviewPlan(id="plan_new", item_id="item_a", scheduled_at=datetime(2026, 3, 13))
    with pytest.raises(PlanAlreadyClosed) as excinfo:
        store.save(Transaction(plans=[done, rewrite]).expect(stale))

    assert excinfo.value.status == "completed"
    assert store.get_plan("plan_new") is None


def test_expected_plan_must_exist(store):
    ghost = ReviewPlan(id="plan_ghost", item_id="item_a", scheduled_at=datetime(2026, 3, 11))

    with pytest.raises(PlanNotFound):
        store.save(Transaction(plans=[ghost]).expect(ghost))
    assert store.get_plan("plan_ghost") is None
