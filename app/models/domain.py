"""
Domain Models - Internal value objects and pure helpers for read models.

All data structures are immutable dataclasses.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    """Validated page/limit pair."""

    page: int
    limit: int

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1: {self.page}")
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1: {self.limit}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        """ceil(total / limit) without floating point."""
        return (total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class ReportingWindows:
    """Calendar boundaries used by the stats overview (UTC)."""

    now: datetime
    today: datetime
    this_week: datetime
    this_month: datetime
    last_month: datetime

    @classmethod
    def at(cls, now: datetime) -> "ReportingWindows":
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        this_month = today.replace(day=1)
        last_month = (this_month - timedelta(days=1)).replace(day=1)
        return cls(
            now=now,
            today=today,
            this_week=today - timedelta(days=7),
            this_month=this_month,
            last_month=last_month,
        )


@dataclass(frozen=True)
class TrailingWindows:
    """Rolling 24h / 7d windows used by the activity feed."""

    now: datetime
    last_24h: datetime
    last_7d: datetime

    @classmethod
    def at(cls, now: datetime) -> "TrailingWindows":
        return cls(now=now, last_24h=now - timedelta(hours=24), last_7d=now - timedelta(days=7))


def utc_now() -> datetime:
    return datetime.now(UTC)


def usage_percent(used: int, limit: int) -> float:
    """
    Percent of limit with two decimals, computed on integers.

    Scaling by 10000 before the floor division keeps precision for byte
    counts far beyond 2^53; only the final small quotient becomes a float.
    """
    if limit <= 0:
        return 0.0
    return (used * 10000 // limit) / 100


def growth_rate(current: int, previous: int) -> float:
    """Month-over-month growth percent, one decimal. 100 when there is no baseline."""
    if previous <= 0:
        return 100.0
    return round((current - previous) / previous * 100, 1)


def floor_int(value: object) -> int:
    """Coerce a numeric aggregate (Decimal, float, None) to whole units."""
    if value is None:
        return 0
    return int(value)  # type: ignore[call-overload]


def fill_daily_series(
    rows: Iterable[tuple[date | datetime, T]],
    end: datetime,
    days: int,
    zero: T,
) -> list[tuple[str, T]]:
    """
    Dense daily series for the trailing window, oldest first.

    Rows come from a GROUP BY on the day, so each day appears at most once.
    Missing days get `zero` so charts have a fixed-length x-axis.
    """
    by_day: dict[date, T] = {}
    for day, value in rows:
        key = day.date() if isinstance(day, datetime) else day
        by_day[key] = value

    last = end.date()
    current = last - timedelta(days=days - 1)
    series = []
    while current <= last:
        series.append((current.isoformat(), by_day.get(current, zero)))
        current += timedelta(days=1)
    return series


def series_start(end: datetime, days: int) -> datetime:
    """Midnight of the first day covered by a `days`-long series ending at `end`."""
    start = end - timedelta(days=days - 1)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)
