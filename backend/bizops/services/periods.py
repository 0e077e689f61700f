# Overview: Temporal bucketing shared by the target recalculator and the metrics.

from __future__ import annotations

from datetime import datetime, timedelta

from ..errors import ValidationError
from ..models.targets import PERIOD_DAILY, PERIOD_MONTHLY, PERIOD_WEEKLY, PERIOD_YEARLY, PERIODS
from bizops.time_utils import utcnow
"""
Window rules (authoritative)

All windows are half-open [start, end) on canonical UTC-naive time.

- daily:   today 00:00 -> tomorrow 00:00
- weekly:  most recent Sunday 00:00 -> +7 days (Sunday starts the week,
           regardless of locale)
- monthly: 1st of this month -> 1st of next month
- yearly:  Jan 1 -> Jan 1 next year

Targets, dashboard revenue cards and reports all use these functions; never
compute a window inline.
"""


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    # datetime.weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (now.weekday() + 1) % 7
    return start_of_day(now) - timedelta(days=days_since_sunday)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def start_of_next_month(now: datetime) -> datetime:
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def start_of_year(now: datetime) -> datetime:
    return start_of_day(now).replace(month=1, day=1)


def period_window(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or utcnow()

    if period == PERIOD_DAILY:
        start = start_of_day(now)
        return start, start + timedelta(days=1)
    if period == PERIOD_WEEKLY:
        start = start_of_week(now)
        return start, start + timedelta(days=7)
    if period == PERIOD_MONTHLY:
        return start_of_month(now), start_of_next_month(now)
    if period == PERIOD_YEARLY:
        start = start_of_year(now)
        return start, start.replace(year=start.year + 1)

    raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")


def calendar_windows(now: datetime | None = None) -> dict[str, tuple[datetime, datetime]]:
    """Today / this week / this month / this year, keyed the way the dashboard reports them."""
    now = now or utcnow()
    return {
        "today": period_window(PERIOD_DAILY, now),
        "week": period_window(PERIOD_WEEKLY, now),
        "month": period_window(PERIOD_MONTHLY, now),
        "year": period_window(PERIOD_YEARLY, now),
    }


def last_n_days(n: int, now: datetime | None = None) -> list[tuple[datetime, datetime]]:
    """Daily windows for the last n days, oldest first, ending with today."""
    today = start_of_day(now or utcnow())
    return [
        (today - timedelta(days=offset), today - timedelta(days=offset - 1))
        for offset in range(n - 1, -1, -1)
    ]


def month_key(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def one_year_before(now: datetime) -> datetime:
    try:
        return now.replace(year=now.year - 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return now.replace(year=now.year - 1, day=28)
