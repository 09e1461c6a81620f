"""Wall-clock helpers shared by the scheduling services.

Times are naive local datetimes; day boundaries are local midnight.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now()


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_tomorrow(moment: datetime) -> datetime:
    return start_of_day(moment) + timedelta(days=1)
