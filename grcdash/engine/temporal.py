"""Priority and temporal classifiers.

The single source of truth for "overdue", "due soon" and "due for review"
across the dashboard. Every aggregator delegates here. ``now`` is always
passed in by the caller; nothing in this module reads the clock.
"""

import math
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

SECONDS_PER_DAY = 86_400

DEFAULT_DUE_SOON_DAYS = 30
DEFAULT_REVIEW_FREQUENCY_DAYS = 90
DEFAULT_REVIEW_WINDOW_DAYS = 7

STATUS_OVERDUE = "OVERDUE"
TERMINAL_STATUSES = frozenset({"COMPLETED", "ARCHIVED", "CLOSED"})


class DueStatus(str, Enum):
    OVERDUE = "OVERDUE"
    DUE_SOON = "DUE_SOON"
    ON_TRACK = "ON_TRACK"
    NO_DATE = "NO_DATE"


def as_utc(value: datetime | date) -> datetime:
    """Normalise a date or datetime to an aware UTC datetime.

    Naive datetimes are taken to be UTC; bare dates mean midnight UTC.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_until(when: Optional[datetime | date], now: datetime) -> Optional[int]:
    """Whole days from ``now`` until ``when``, rounded up. None propagates."""
    if when is None:
        return None
    delta = as_utc(when) - as_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def _is_terminal(status: Optional[str], terminal: Iterable[str]) -> bool:
    return status is not None and status in terminal


def is_overdue(
    due: Optional[datetime | date],
    now: datetime,
    status: Optional[str] = None,
    terminal: Iterable[str] = TERMINAL_STATUSES,
) -> bool:
    """Explicitly flagged overdue, or still live with the due date reached."""
    if status == STATUS_OVERDUE:
        return True
    if _is_terminal(status, terminal):
        return False
    days = days_until(due, now)
    return days is not None and days <= 0


def is_due_soon(
    due: Optional[datetime | date],
    now: datetime,
    status: Optional[str] = None,
    horizon_days: int = DEFAULT_DUE_SOON_DAYS,
    terminal: Iterable[str] = TERMINAL_STATUSES,
) -> bool:
    if _is_terminal(status, terminal) or is_overdue(due, now, status, terminal):
        return False
    days = days_until(due, now)
    return days is not None and 0 < days <= horizon_days


def classify_due(
    due: Optional[datetime | date],
    now: datetime,
    status: Optional[str] = None,
    horizon_days: int = DEFAULT_DUE_SOON_DAYS,
    terminal: Iterable[str] = TERMINAL_STATUSES,
) -> DueStatus:
    if is_overdue(due, now, status, terminal):
        return DueStatus.OVERDUE
    if due is None:
        return DueStatus.NO_DATE
    if is_due_soon(due, now, status, horizon_days, terminal):
        return DueStatus.DUE_SOON
    return DueStatus.ON_TRACK


def next_review_date(
    last_reviewed: Optional[datetime | date],
    frequency_days: Optional[int] = None,
) -> Optional[datetime]:
    if last_reviewed is None:
        return None
    frequency = frequency_days or DEFAULT_REVIEW_FREQUENCY_DAYS
    return as_utc(last_reviewed) + timedelta(days=frequency)


def is_review_due(
    last_reviewed: Optional[datetime | date],
    now: datetime,
    frequency_days: Optional[int] = None,
    review_requested: bool = False,
    window_days: int = DEFAULT_REVIEW_WINDOW_DAYS,
) -> bool:
    """Review requested explicitly, or the next review falls within the window.

    An entity that has never been reviewed is always due.
    """
    if review_requested:
        return True
    upcoming = next_review_date(last_reviewed, frequency_days)
    if upcoming is None:
        return True
    return days_until(upcoming, now) <= window_days
