"""Calendar rules for streak deadlines and pardons.

Pure functions of the profile's streak fields and the current time, shared by
the gamification engine (lazy break detection) and the pardon service.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from readsync.clock import as_utc, days_between, local_day, local_zone, start_of_day, utcnow
from readsync.config import PARDON_COOLDOWN_DAYS, PARDON_WINDOW_HOURS
from readsync.models import UserProfile

NOT_NEEDED = "not_needed"
AVAILABLE = "available"
COOLDOWN = "cooldown"
EXPIRED = "expired"


@dataclass(frozen=True)
class PardonEligibility:
    status: str
    missed_day: date | None = None
    deadline: datetime | None = None
    next_available: datetime | None = None

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE


def streak_deadline(
    profile: UserProfile,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> datetime | None:
    """End of today, if reading today would still extend the streak."""
    if profile.last_reading_date is None:
        return None
    tz = tz or local_zone()
    now = as_utc(now or utcnow())
    if days_between(profile.last_reading_date, now, tz) > 1:
        return None
    return start_of_day(local_day(now, tz) + timedelta(days=1), tz)


def pardon_eligibility(
    profile: UserProfile,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
    window_hours: int = PARDON_WINDOW_HOURS,
    cooldown_days: int = PARDON_COOLDOWN_DAYS,
) -> PardonEligibility:
    """A pardon bridges exactly one missed day, within ``window_hours`` of that day starting."""
    if profile.last_reading_date is None:
        return PardonEligibility(NOT_NEEDED)

    tz = tz or local_zone()
    now = as_utc(now or utcnow())
    gap = days_between(profile.last_reading_date, now, tz)
    if gap < 2:
        return PardonEligibility(NOT_NEEDED)

    missed_day = local_day(profile.last_reading_date, tz) + timedelta(days=1)
    if gap > 2:
        return PardonEligibility(EXPIRED, missed_day=missed_day)

    deadline = start_of_day(missed_day, tz) + timedelta(hours=window_hours)
    if now > deadline:
        return PardonEligibility(EXPIRED, missed_day=missed_day)

    if profile.last_pardon_date is not None:
        cooldown_end = as_utc(profile.last_pardon_date) + timedelta(days=cooldown_days)
        if now < cooldown_end:
            return PardonEligibility(COOLDOWN, missed_day=missed_day, next_available=cooldown_end)

    return PardonEligibility(AVAILABLE, missed_day=missed_day, deadline=deadline)
