"""
Certification status windows

A user's status runs for one year from their first approval and every later
approval pushes the end date out again, but never past two years after the
original start date.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from training_portal.config import STATUS_DURATION_FORMAT

ONE_YEAR = relativedelta(years=1)
STATUS_CEILING = relativedelta(years=2)


@dataclass(frozen=True)
class StatusWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class RemainingTime:
    years: int = 0
    months: int = 0
    days: int = 0

    def __str__(self) -> str:
        return STATUS_DURATION_FORMAT.format(
            years=self.years, months=self.months, days=self.days
        )


def compute_initial_status(now: datetime) -> StatusWindow:
    return StatusWindow(start=now, end=now + ONE_YEAR)


def status_ceiling(status_start_date: datetime) -> datetime:
    return status_start_date + STATUS_CEILING


def extend_status(
    status_start_date: datetime,
    status_end_date: Optional[datetime],
    now: datetime,
) -> datetime:
    """
    Return the new status end date after one more approval.

    - expired (end <= now): restart at now + 1 year
    - at least a year of room left before the ceiling: add exactly 1 year
    - otherwise: stop at the ceiling
    """
    ceiling = status_ceiling(status_start_date)
    end = status_end_date or now

    if end <= now:
        new_end = now + ONE_YEAR
    elif end + ONE_YEAR <= ceiling:
        new_end = end + ONE_YEAR
    else:
        new_end = ceiling

    return min(new_end, ceiling)


def format_remaining(end: Optional[datetime], now: datetime) -> RemainingTime:
    """Calendar years/months/days between now and end, zero once end has passed"""
    if end is None or end <= now:
        return RemainingTime()
    delta = relativedelta(end, now)
    return RemainingTime(years=delta.years, months=delta.months, days=delta.days)
