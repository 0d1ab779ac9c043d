"""
Date windows for the analytics summary.

Everything is relative to one reference instant passed in by the caller, so a
single request sees a consistent "now" across every window and every daysAgo.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

WEEK_BUCKETS = 4
SCORE_SERIES_MONTHS = 6
RECENT_ACTIVITY_DAYS = 7


@dataclass(frozen=True)
class Window:
    """Half-open interval [start, end); end=None means unbounded."""
    start: datetime
    end: datetime | None = None


@dataclass(frozen=True)
class WeekBucket:
    label: str
    window: Window


@dataclass(frozen=True)
class StatsWindows:
    now: datetime
    current_month: Window
    previous_month: Window
    last_7_days: Window
    score_series: Window
    weeks: tuple[WeekBucket, ...]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_month(instant: datetime) -> datetime:
    return instant.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def months_before(instant: datetime, n: int) -> datetime:
    """Same day-of-month n months earlier, clamped to the target month's length."""
    month_index = instant.year * 12 + (instant.month - 1) - n
    year, month = divmod(month_index, 12)
    month += 1
    day = min(instant.day, calendar.monthrange(year, month)[1])
    return instant.replace(year=year, month=month, day=day)


def days_before(instant: datetime, n: int) -> datetime:
    return instant - timedelta(days=n)


def month_key(instant: datetime) -> str:
    return f"{instant.year:04d}-{instant.month:02d}"


def week_buckets(now: datetime, count: int = WEEK_BUCKETS) -> tuple[WeekBucket, ...]:
    """Trailing 7-day buckets, oldest first, labelled Week 1..Week <count>."""
    buckets = []
    for i in range(count - 1, -1, -1):
        buckets.append(
            WeekBucket(
                label=f"Week {count - i}",
                window=Window(start=days_before(now, (i + 1) * 7), end=days_before(now, i * 7)),
            )
        )
    return tuple(buckets)


def build_windows(now: datetime) -> StatsWindows:
    this_month = start_of_month(now)
    return StatsWindows(
        now=now,
        current_month=Window(start=this_month),
        previous_month=Window(start=start_of_month(months_before(now, 1)), end=this_month),
        last_7_days=Window(start=days_before(now, RECENT_ACTIVITY_DAYS)),
        score_series=Window(start=start_of_month(months_before(now, SCORE_SERIES_MONTHS - 1))),
        weeks=week_buckets(now),
    )


def days_ago(now: datetime, then: datetime | None) -> int:
    """Whole days elapsed between `then` and `now`; 0 for missing or future timestamps."""
    if then is None:
        return 0
    elapsed = now - as_utc(then)
    return max(0, elapsed // timedelta(days=1))
