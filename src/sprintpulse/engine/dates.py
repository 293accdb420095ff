"""UTC day arithmetic used by the aggregator and the trend smoother."""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Union

DAY = timedelta(days=1)
HOUR_SECONDS = 3600.0


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; aware values are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_day(day: Union[str, date, datetime]) -> date:
    if isinstance(day, datetime):
        return as_utc(day).date()
    if isinstance(day, date):
        return day
    return date.fromisoformat(day[:10])


def start_of_day(day: Union[str, date, datetime]) -> datetime:
    return datetime.combine(parse_day(day), time.min, tzinfo=timezone.utc)


def end_of_day(day: Union[str, date, datetime]) -> datetime:
    return start_of_day(day) + DAY - timedelta(milliseconds=1)


def day_key(value: datetime) -> str:
    return as_utc(value).date().isoformat()


def date_range(start: date, end: date) -> List[str]:
    """Inclusive list of ISO days from ``start`` to ``end``."""
    days = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += DAY
    return days


def hours_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds() / HOUR_SECONDS


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, rounded half-up and never negative."""
    days = (as_utc(end) - as_utc(start)).total_seconds() / DAY.total_seconds()
    return max(0, int(math.floor(days + 0.5)))
