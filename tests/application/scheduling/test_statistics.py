from datetime import datetime, timedelta

import pytest

from rehearser.domain.scheduling.models import ReviewStatus


def test_no_completed_reviews_returns_none(services, make_item, make_plan, clock):
    item = make_item()
    make_plan(item, clock.now)

    assert services.statistics.get_review_statistics(item) is None


def test_review_statistics(services, make_item, make_plan, clock):
    item = make_item(streak_count=1, longest_streak=4)
    # Finished an hour early
    make_plan(
        item,
        datetime(2026, 3, 9, 10, 0),
        status=ReviewStatus.COMPLETED,
        score=4,
        completed_at=datetime(2026, 3, 9, 9, 0),
    )
    # Finished two hours late, three weeks ago
    make_plan(
        item,
        datetime(2026, 2, 17, 10, 0),
        status=ReviewStatus.COMPLETED,
        score=2,
        completed_at=datetime(2026, 2, 17, 12, 0),
    )
    make_plan(item, clock.now)

    stats = services.statistics.get_review_statistics(item)

    assert stats.total_reviews == 2
    assert stats.average_score == pytest.approx(3.0)
    assert stats.completion_rate == pytest.approx(2 / 3)
    assert stats.average_interval == timedelta(minutes=-30)
    assert stats.current_streak == 1
    assert stats.longest_streak == 4
    assert stats.reviews_this_week == 1
    assert stats.reviews_this_month == 2


def test_statistics_use_stored_item(services, engine, store, make_item, make_plan, clock):
    item = make_item()
    plan = make_plan(item, clock.now)
    engine.complete_review(plan, 5)

    # The caller's copy predates the completion
    stats = services.statistics.get_review_statistics(item)

    assert stats.current_streak == 1
    assert stats.longest_streak == 1
    assert stats.completion_rate == pytest.approx(0.5)
    assert stats.average_interval == timedelta(0)


def test_statistics_are_read_only(services, store, make_item, make_plan, clock):
    item = make_item()
    plan = make_plan(item, clock.now, status=ReviewStatus.COMPLETED, score=3, completed_at=clock.now)

    services.statistics.get_review_statistics(item)

    assert store.get_plan(plan.id) == plan
    assert store.get_item(item.id) == item
