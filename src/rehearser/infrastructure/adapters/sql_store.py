"""
SQL Record Store: infrastructure adapter over SQLAlchemy.

Handles ONLY database I/O: mapping frozen domain entities to ORM rows and
back. Scheduling logic lives in the application layer.
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine, event, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from rehearser.domain.errors import PersistenceFailure, PlanAlreadyClosed, PlanNotFound
from rehearser.domain.scheduling.models import (
    ConfidenceLevel,
    IntervalLevel,
    Item,
    ReviewPlan,
    ReviewStatus,
)
from rehearser.domain.scheduling.ports import PlanQuery, RecordStore, Transaction
from rehearser.infrastructure.persistence.models import Base, ItemRow, ReviewPlanRow

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_store_engine(database_url: str) -> Engine:
    """
    Build an engine for ``database_url``.

    SQLite gets foreign-key enforcement; an in-memory SQLite database is kept
    on a single shared connection so every session sees the same data.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            pool_size=5,  # Keep 5 connections open
            max_overflow=10,  # Allow up to 10 extra connections
            pool_pre_ping=True,  # Verify connections before use
        )

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if database_url in _IN_MEMORY_URLS:
        kwargs["poolclass"] = StaticPool
    else:
        db_path = Path(database_url.removeprefix("sqlite:///"))
        db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class SqlRecordStore(RecordStore):
    """
    Relational RecordStore. One session per call; ``save`` commits or rolls
    back the whole transaction.
    """

    def __init__(self, database_url: str, engine: Engine | None = None):
        self.database_url = database_url
        self._engine = engine or create_store_engine(database_url)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    def init_db(self) -> None:
        """Create tables that do not exist yet. Safe to call repeatedly."""
        Base.metadata.create_all(self._engine)

    def get_item(self, item_id: str) -> Item | None:
        with self._sessions() as session:
            row = session.get(ItemRow, item_id)
            return _item_from_row(row) if row else None

    def get_plan(self, plan_id: str) -> ReviewPlan | None:
        with self._sessions() as session:
            row = session.get(ReviewPlanRow, plan_id)
            return _plan_from_row(row) if row else None

    def fetch_items(self) -> list[Item]:
        stmt = select(ItemRow).order_by(ItemRow.id)
        with self._sessions() as session:
            return [_item_from_row(row) for row in session.scalars(stmt)]

    def fetch_plans(self, query: PlanQuery, limit: int | None = None) -> list[ReviewPlan]:
        stmt = select(ReviewPlanRow)
        if query.statuses is not None:
            stmt = stmt.where(ReviewPlanRow.status.in_([s.value for s in query.statuses]))
        if query.item_ids is not None:
            stmt = stmt.where(ReviewPlanRow.item_id.in_(query.item_ids))
        if query.scheduled_from is not None:
            stmt = stmt.where(ReviewPlanRow.scheduled_at >= query.scheduled_from)
        if query.scheduled_before is not None:
            stmt = stmt.where(ReviewPlanRow.scheduled_at < query.scheduled_before)
        if query.scheduled_until is not None:
            stmt = stmt.where(ReviewPlanRow.scheduled_at <= query.scheduled_until)

        if query.descending:
            stmt = stmt.order_by(ReviewPlanRow.scheduled_at.desc(), ReviewPlanRow.id.desc())
        else:
            stmt = stmt.order_by(ReviewPlanRow.scheduled_at.asc(), ReviewPlanRow.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._sessions() as session:
            return [_plan_from_row(row) for row in session.scalars(stmt)]

    def save(self, transaction: Transaction) -> None:
        try:
            with self._sessions() as session, session.begin():
                # Must be the first statements: they take the write lock, so a
                # concurrent writer in another process waits and then sees the
                # committed status.
                for plan_id, status in transaction.expected.items():
                    _claim_plan(session, plan_id, status)
                for item in transaction.items:
                    session.merge(_item_to_row(item))
                # Items first so new plans can reference them.
                session.flush()
                for plan in transaction.plans:
                    session.merge(_plan_to_row(plan))
        except SQLAlchemyError as e:
            logger.error(f"Transaction rolled back: {e}")
            raise PersistenceFailure("transaction", e) from e


def _claim_plan(session: Session, plan_id: str, status: ReviewStatus) -> None:
    """
    Conditionally touch a plan row, refusing the save when its stored status
    is no longer ``status``.
    """
    result = session.execute(
        update(ReviewPlanRow)
        .where(ReviewPlanRow.id == plan_id, ReviewPlanRow.status == status.value)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    row = session.get(ReviewPlanRow, plan_id)
    if row is None:
        raise PlanNotFound(plan_id)
    logger.warning(f"Refusing stale write to {plan_id}: stored status is {row.status}")
    raise PlanAlreadyClosed(plan_id, row.status)


def _item_from_row(row: ItemRow) -> Item:
    return Item(
        id=row.id,
        title=row.title,
        category=row.category,
        mastery=row.mastery,
        total_reviews=row.total_reviews,
        average_score=row.average_score,
        streak_count=row.streak_count,
        longest_streak=row.longest_streak,
        last_practiced_at=row.last_practiced_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _item_to_row(item: Item) -> ItemRow:
    return ItemRow(
        id=item.id,
        title=item.title,
        category=item.category,
        mastery=int(item.mastery),
        total_reviews=item.total_reviews,
        average_score=item.average_score,
        streak_count=item.streak_count,
        longest_streak=item.longest_streak,
        last_practiced_at=item.last_practiced_at,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _plan_from_row(row: ReviewPlanRow) -> ReviewPlan:
    return ReviewPlan(
        id=row.id,
        item_id=row.item_id,
        scheduled_at=row.scheduled_at,
        status=ReviewStatus(row.status),
        interval_level=IntervalLevel(row.interval_level),
        ease_factor=row.ease_factor,
        difficulty_adjustment=row.difficulty_adjustment,
        score=row.score,
        confidence=ConfidenceLevel(row.confidence) if row.confidence is not None else None,
        time_spent=row.time_spent,
        completed_at=row.completed_at,
    )


def _plan_to_row(plan: ReviewPlan) -> ReviewPlanRow:
    return ReviewPlanRow(
        id=plan.id,
        item_id=plan.item_id,
        status=plan.status.value,
        interval_level=int(plan.interval_level),
        ease_factor=plan.ease_factor,
        difficulty_adjustment=plan.difficulty_adjustment,
        scheduled_at=plan.scheduled_at,
        score=plan.score,
        confidence=int(plan.confidence) if plan.confidence is not None else None,
        time_spent=plan.time_spent,
        completed_at=plan.completed_at,
    )
