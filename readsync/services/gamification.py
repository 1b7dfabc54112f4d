"""Streak state machine, XP crediting and achievements for the profile."""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, local_day, longest_run, start_of_day, utcnow
from readsync.models import (
    Achievement,
    AchievementType,
    Book,
    ReadingSession,
    ReadingStatus,
    StreakEvent,
    StreakEventType,
    UserProfile,
)
from readsync.services import streaks

logger = logging.getLogger(__name__)

# Sessions dated slightly ahead of the local clock (peer skew) still count as now
FUTURE_TOLERANCE = timedelta(seconds=60)

BOOK_MILESTONES = [
    (1, AchievementType.FIRST_BOOK),
    (10, AchievementType.TEN_BOOKS),
    (50, AchievementType.FIFTY_BOOKS),
    (100, AchievementType.HUNDRED_BOOKS),
]
PAGE_MILESTONES = [
    (100, AchievementType.HUNDRED_PAGES),
    (1000, AchievementType.THOUSAND_PAGES),
    (10000, AchievementType.TEN_THOUSAND_PAGES),
]
STREAK_MILESTONES = [
    (7, AchievementType.SEVEN_DAY_STREAK),
    (30, AchievementType.THIRTY_DAY_STREAK),
    (100, AchievementType.HUNDRED_DAY_STREAK),
]
LEVEL_MILESTONES = [
    (5, AchievementType.LEVEL_FIVE),
    (10, AchievementType.LEVEL_TEN),
    (20, AchievementType.LEVEL_TWENTY),
]
PAGES_IN_DAY = 100
MARATHON_MINUTES = 180


class GamificationEngine:
    """Derives streak, XP and achievement state. Flushes, never commits."""

    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None) -> None:
        self.db = db
        self.tz = tz

    def award_xp(self, profile: UserProfile, amount: int) -> None:
        profile.total_xp = max(0, profile.total_xp + amount)

    async def update_streak(
        self, profile: UserProfile, session_date: datetime, now: datetime | None = None
    ) -> None:
        """Advance the streak for a qualifying session read at ``session_date``."""
        if profile.streaks_paused:
            return

        now = as_utc(now or utcnow())
        session_date = min(as_utc(session_date), now + FUTURE_TOLERANCE)
        day = local_day(session_date, self.tz)

        if profile.last_reading_date is None:
            await self._start_streak(profile, session_date)
            return

        last_day = local_day(profile.last_reading_date, self.tz)
        gap = (day - last_day).days

        if gap < 0:
            # Backdated session; the history is settled by recalculate_stats
            return

        if gap == 0:
            if profile.current_streak == 0:
                await self._start_streak(profile, session_date)
            return

        if gap == 1 and profile.current_streak > 0:
            profile.current_streak += 1
            profile.longest_streak = max(profile.longest_streak, profile.current_streak)
            profile.last_reading_date = session_date
            await self.record_event(StreakEventType.DAY, session_date, profile.current_streak)
            logger.info("Streak extended to %d", profile.current_streak)
            return

        if profile.current_streak > 0:
            # Dated on the first missed day
            missed_at = start_of_day(last_day + timedelta(days=1), self.tz)
            await self.record_event(StreakEventType.LOST, missed_at, profile.current_streak)
            logger.info("Streak of %d lost after %d days", profile.current_streak, gap)
        await self._start_streak(profile, session_date)

    async def refresh_streak(
        self, profile: UserProfile, now: datetime | None = None
    ) -> streaks.PardonEligibility:
        """Break a streak whose missed day can no longer be pardoned.

        Pull-based: nothing is recorded until someone asks. A streak inside its
        pardon window is left intact so it can still be saved.
        """
        now = as_utc(now or utcnow())
        eligibility = streaks.pardon_eligibility(profile, now, self.tz)
        if profile.streaks_paused or profile.current_streak == 0:
            return eligibility

        if eligibility.status in (streaks.EXPIRED, streaks.COOLDOWN):
            await self.record_event(StreakEventType.LOST, now, profile.current_streak)
            logger.info("Streak of %d broken (%s)", profile.current_streak, eligibility.status)
            profile.current_streak = 0
            await self.db.flush()
        return eligibility

    async def recalculate_stats(self, profile: UserProfile, now: datetime | None = None) -> None:
        """Rebuild XP and streak totals from the stored sessions and pardons."""
        now = as_utc(now or utcnow())
        sessions = await self._counting_sessions()

        profile.total_xp = max(0, sum(s.xp_earned for s in sessions))

        saved = await self.db.execute(
            select(StreakEvent.date).where(StreakEvent.type == StreakEventType.SAVED)
        )
        saved_days = {local_day(d, self.tz) for d in saved.scalars().all()}
        reading_days = {local_day(s.start_date, self.tz) for s in sessions}
        days = sorted(reading_days | saved_days)

        if not days:
            profile.current_streak = 0
            profile.longest_streak = 0
            profile.last_reading_date = None
        else:
            longest, trailing = longest_run(days)
            today = local_day(now, self.tz)
            last_day = days[-1]
            profile.current_streak = trailing if (today - last_day).days <= 1 else 0
            profile.longest_streak = max(longest, profile.current_streak)

            latest = max((as_utc(s.start_date) for s in sessions), default=None)
            if latest is None or local_day(latest, self.tz) < last_day:
                latest = start_of_day(last_day, self.tz)
            profile.last_reading_date = latest

        await self.check_achievements(profile, sessions)
        await self.db.flush()
        logger.info(
            "Recalculated stats: xp=%d streak=%d longest=%d",
            profile.total_xp,
            profile.current_streak,
            profile.longest_streak,
        )

    async def check_achievements(
        self, profile: UserProfile, sessions: list[ReadingSession] | None = None
    ) -> list[Achievement]:
        if sessions is None:
            sessions = await self._counting_sessions()

        finished = (
            await self.db.execute(
                select(func.count(Book.id)).where(Book.reading_status == ReadingStatus.FINISHED)
            )
        ).scalar() or 0

        pages_by_day: dict[date, int] = defaultdict(int)
        minutes_by_day: dict[date, int] = defaultdict(int)
        for s in sessions:
            day = local_day(s.start_date, self.tz)
            pages_by_day[day] += max(0, s.pages_read)
            minutes_by_day[day] += s.duration_minutes
        total_pages = sum(pages_by_day.values())

        earned = []
        earned += [t for n, t in BOOK_MILESTONES if finished >= n]
        earned += [t for n, t in PAGE_MILESTONES if total_pages >= n]
        earned += [t for n, t in STREAK_MILESTONES if profile.longest_streak >= n]
        earned += [t for n, t in LEVEL_MILESTONES if profile.current_level >= n]
        if max(pages_by_day.values(), default=0) >= PAGES_IN_DAY:
            earned.append(AchievementType.HUNDRED_PAGES_IN_DAY)
        if max(minutes_by_day.values(), default=0) >= MARATHON_MINUTES:
            earned.append(AchievementType.MARATHON_READER)

        unlocked = []
        for achievement_type in earned:
            achievement = await self.unlock_achievement(profile, achievement_type)
            if achievement is not None:
                unlocked.append(achievement)
        return unlocked

    async def unlock_achievement(
        self, profile: UserProfile, achievement_type: AchievementType
    ) -> Achievement | None:
        """Store the achievement unless the profile already has it."""
        existing = await self.db.execute(
            select(Achievement.id).where(
                Achievement.profile_id == profile.id, Achievement.type == achievement_type
            )
        )
        if existing.scalar_one_or_none() is not None:
            return None
        achievement = Achievement(profile_id=profile.id, type=achievement_type)
        self.db.add(achievement)
        await self.db.flush()
        logger.info("Achievement unlocked: %s", achievement_type)
        return achievement

    async def _start_streak(self, profile: UserProfile, at: datetime) -> None:
        profile.current_streak = 1
        profile.longest_streak = max(profile.longest_streak, 1)
        profile.last_reading_date = at
        await self.record_event(StreakEventType.STARTED, at, 1)
        await self.record_event(StreakEventType.DAY, at, 1)

    async def record_event(self, event_type: StreakEventType, at: datetime, length: int) -> StreakEvent:
        """Append a streak event, at most one per type and local day."""
        day = local_day(at, self.tz)
        result = await self.db.execute(
            select(StreakEvent).where(
                StreakEvent.type == event_type,
                StreakEvent.date >= start_of_day(day, self.tz),
                StreakEvent.date < start_of_day(day + timedelta(days=1), self.tz),
            )
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing
        event = StreakEvent(date=as_utc(at), type=event_type, streak_length=length)
        self.db.add(event)
        await self.db.flush()
        return event

    async def _counting_sessions(self) -> list[ReadingSession]:
        result = await self.db.execute(
            select(ReadingSession).where(ReadingSession.counts_toward_stats.is_(True))
        )
        return list(result.scalars().unique().all())
