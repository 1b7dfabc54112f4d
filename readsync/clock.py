"""Time helpers.

Timestamps are stored as naive UTC (SQLite drops tzinfo). Calendar days are
evaluated in the configured local zone so a streak day ends at local midnight.
"""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from readsync.config import TIMEZONE


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the store."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def local_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or TIMEZONE)


def local_day(dt: datetime, tz: ZoneInfo | None = None) -> date:
    return as_utc(dt).astimezone(tz or local_zone()).date()


def start_of_day(day: date, tz: ZoneInfo | None = None) -> datetime:
    """UTC instant of local midnight at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=tz or local_zone()).astimezone(UTC)


def days_between(earlier: datetime, later: datetime, tz: ZoneInfo | None = None) -> int:
    """Number of calendar-day boundaries crossed between two instants."""
    return (local_day(later, tz) - local_day(earlier, tz)).days


def longest_run(days: list[date]) -> tuple[int, int]:
    """Return (longest, trailing) runs of consecutive days in a sorted list."""
    longest = 0
    current = 0
    previous: date | None = None
    for day in days:
        if previous is not None and day - previous == timedelta(days=1):
            current += 1
        else:
            current = 1
        longest = max(longest, current)
        previous = day
    return longest, current
