"""Streak status reads and the transactional pardon."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, start_of_day, utcnow
from readsync.config import PARDON_COOLDOWN_DAYS, PARDON_WINDOW_HOURS
from readsync.errors import PardonUnavailableError
from readsync.models import StreakEventType, UserProfile
from readsync.services import streaks
from readsync.services.gamification import GamificationEngine

logger = logging.getLogger(__name__)

# Serializes check-then-act on the profile streak within this process
_pardon_lock = asyncio.Lock()


@dataclass
class StreakStatus:
    current_streak: int
    longest_streak: int
    last_reading_date: datetime | None
    deadline: datetime | None
    pardon: streaks.PardonEligibility
    streaks_paused: bool


class StreakService:
    def __init__(
        self,
        db: AsyncSession,
        tz: ZoneInfo | None = None,
        window_hours: int = PARDON_WINDOW_HOURS,
        cooldown_days: int = PARDON_COOLDOWN_DAYS,
    ) -> None:
        self.db = db
        self.tz = tz
        self.window_hours = window_hours
        self.cooldown_days = cooldown_days

    def eligibility(self, profile: UserProfile, now: datetime | None = None) -> streaks.PardonEligibility:
        return streaks.pardon_eligibility(
            profile, now, self.tz, window_hours=self.window_hours, cooldown_days=self.cooldown_days
        )

    async def status(self, profile: UserProfile, now: datetime | None = None) -> StreakStatus:
        """Lazily settle an already-broken streak, then report deadline and pardon state."""
        now = as_utc(now or utcnow())
        await GamificationEngine(self.db, self.tz).refresh_streak(profile, now)
        await self.db.commit()
        return StreakStatus(
            current_streak=profile.current_streak,
            longest_streak=profile.longest_streak,
            last_reading_date=profile.last_reading_date,
            deadline=streaks.streak_deadline(profile, now, self.tz),
            pardon=self.eligibility(profile, now),
            streaks_paused=profile.streaks_paused,
        )

    async def apply_pardon(self, profile: UserProfile, now: datetime | None = None) -> UserProfile:
        """Bridge the single missed day. Raises PardonUnavailableError otherwise.

        Eligibility is re-checked under the lock against the freshly loaded
        profile so two concurrent taps cannot both apply.
        """
        async with _pardon_lock:
            await self.db.refresh(profile)
            now = as_utc(now or utcnow())
            eligibility = self.eligibility(profile, now)
            if not eligibility.is_available:
                raise PardonUnavailableError(eligibility)

            missed_at = start_of_day(eligibility.missed_day, self.tz) + timedelta(hours=12)
            profile.current_streak += 1
            profile.longest_streak = max(profile.longest_streak, profile.current_streak)
            profile.last_reading_date = missed_at
            profile.last_pardon_date = now

            engine = GamificationEngine(self.db, self.tz)
            await engine.record_event(StreakEventType.SAVED, missed_at, profile.current_streak)
            try:
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                logger.exception("Failed to save pardon")
                raise

        logger.info("Pardon applied for %s, streak now %d", eligibility.missed_day, profile.current_streak)
        return profile
