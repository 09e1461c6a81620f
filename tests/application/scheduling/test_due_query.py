from datetime import datetime

import pytest

from rehearser.domain.scheduling.models import ReviewStatus


@pytest.fixture
def timeline(make_item, make_plan, clock):
    """One item per plan so ordering is only by time."""
    clock.now = datetime(2026, 3, 10, 12, 0)
    return {
        "overdue": make_plan(make_item(), datetime(2026, 3, 8, 9, 0)),
        "earlier_today": make_plan(make_item(), datetime(2026, 3, 10, 8, 0)),
        "later_today": make_plan(make_item(), datetime(2026, 3, 10, 18, 0)),
        "tomorrow": make_plan(make_item(), datetime(2026, 3, 11, 9, 0)),
        "completed": make_plan(
            make_item(), datetime(2026, 3, 9, 9, 0), status=ReviewStatus.COMPLETED, score=4
        ),
        "skipped": make_plan(make_item(), datetime(2026, 3, 10, 7, 0), status=ReviewStatus.SKIPPED),
        "postponed": make_plan(
            make_item(), datetime(2026, 3, 10, 9, 0), status=ReviewStatus.POSTPONED
        ),
    }


def _ids(plans):
    return [p.id for p in plans]


def test_due_reviews(services, timeline):
    due = services.due.get_due_reviews()

    assert _ids(due) == [timeline["overdue"].id, timeline["earlier_today"].id]


def test_due_reviews_limit(services, timeline):
    assert _ids(services.due.get_due_reviews(limit=1)) == [timeline["overdue"].id]


def test_due_includes_plan_scheduled_exactly_now(services, make_item, make_plan, clock):
    plan = make_plan(make_item(), clock.now)

    assert _ids(services.due.get_due_reviews()) == [plan.id]


def test_today_reviews(services, timeline):
    today = services.due.get_today_reviews()

    assert _ids(today) == [timeline["earlier_today"].id, timeline["later_today"].id]


def test_overdue_reviews(services, timeline):
    assert _ids(services.due.get_overdue_reviews()) == [timeline["overdue"].id]


def test_overdue_and_today_are_disjoint(services, timeline):
    overdue = set(_ids(services.due.get_overdue_reviews()))
    today = set(_ids(services.due.get_today_reviews()))

    assert overdue.isdisjoint(today)


def test_reads_are_repeatable(services, timeline):
    first = services.due.get_due_reviews()
    second = services.due.get_due_reviews()

    assert first == second


def test_empty_store(services):
    assert services.due.get_due_reviews() == []
    assert services.due.get_today_reviews() == []
    assert services.due.get_overdue_reviews() == []


def test_predict_next_review_date(services, make_item, make_plan):
    item = make_item()
    make_plan(item, datetime(2026, 3, 20, 9, 0))
    make_plan(item, datetime(2026, 3, 12, 9, 0))
    make_plan(item, datetime(2026, 3, 11, 9, 0), status=ReviewStatus.COMPLETED, score=5)

    assert services.due.predict_next_review_date(item) == datetime(2026, 3, 12, 9, 0)


def test_predict_without_pending_plan(services, make_item):
    assert services.due.predict_next_review_date(make_item()) is None
