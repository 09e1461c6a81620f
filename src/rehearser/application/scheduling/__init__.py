# Application Scheduling Package
from .calibrator import CalibrationReport, CategoryCalibration, DifficultyCalibrator
from .due_query import DueQuery
from .engine import SchedulingEngine
from .locks import ItemLocks
from .statistics import StatisticsAggregator

__all__ = [
    "CalibrationReport",
    "CategoryCalibration",
    "DifficultyCalibrator",
    "DueQuery",
    "ItemLocks",
    "SchedulingEngine",
    "StatisticsAggregator",
]
