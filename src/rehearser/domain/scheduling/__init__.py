# Domain Scheduling Package
from .models import (
    ConfidenceLevel,
    IntervalLevel,
    Item,
    MasteryLevel,
    ReviewPlan,
    ReviewStatistics,
    ReviewStatus,
)
from .ports import PlanQuery, RecordStore, Transaction

__all__ = [
    "ConfidenceLevel",
    "IntervalLevel",
    "Item",
    "MasteryLevel",
    "PlanQuery",
    "RecordStore",
    "ReviewPlan",
    "ReviewStatistics",
    "ReviewStatus",
    "Transaction",
]
