"""
SQLAlchemy ORM models for the record store.

Defines the ``items`` and ``review_plans`` tables. Enumerations are stored
as their values; ``review_plans.item_id`` is an indexed foreign key.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ItemRow(Base):
    """Persistent aggregate state for one learned item."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="", index=True)

    mastery: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-5
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_practiced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ItemRow({self.id}, {self.category!r}, mastery={self.mastery})>"


class ReviewPlanRow(Base):
    """One scheduled or attempted review of an item."""

    __tablename__ = "review_plans"
    __table_args__ = (Index("ix_review_plans_status_scheduled", "status", "scheduled_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("items.id"), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False)
    interval_level: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-8
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False)
    difficulty_adjustment: Mapped[float] = mapped_column(Float, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Set on completion only
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    confidence: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 1-5
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ReviewPlanRow({self.id}, item={self.item_id}, {self.status})>"
