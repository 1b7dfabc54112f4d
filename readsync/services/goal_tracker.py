"""Recompute progress of standing reading goals from the stored history."""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, local_day, longest_run, utcnow
from readsync.models import Book, GoalType, ReadingGoal, ReadingSession, ReadingStatus, UserProfile

logger = logging.getLogger(__name__)


class GoalTracker:
    def __init__(self, db: AsyncSession, tz: ZoneInfo | None = None) -> None:
        self.db = db
        self.tz = tz

    async def update_goals(self, profile: UserProfile, now: datetime | None = None) -> list[ReadingGoal]:
        """Refresh ``current_value`` of every active goal. Safe to call after any mutation.

        Completion is sticky: a completed goal is no longer active, so it is never
        recomputed back to incomplete. Changes are flushed, not committed.
        """
        now = as_utc(now or utcnow())
        result = await self.db.execute(select(ReadingGoal).where(ReadingGoal.profile_id == profile.id))
        goals = [g for g in result.scalars().all() if g.is_active(now)]

        for goal in goals:
            goal.current_value = await self._progress(goal, now)
            if goal.current_value >= goal.target_value:
                goal.is_completed = True
                logger.info("Goal %s (%s) completed at %d", goal.id, goal.type, goal.current_value)

        await self.db.flush()
        return goals

    async def _progress(self, goal: ReadingGoal, now: datetime) -> int:
        start = as_utc(goal.start_date)
        end = as_utc(goal.end_date)

        if goal.type in (GoalType.BOOKS_PER_YEAR, GoalType.BOOKS_PER_MONTH):
            stmt = select(func.count(Book.id)).where(
                Book.reading_status == ReadingStatus.FINISHED,
                Book.date_finished.is_not(None),
                Book.date_finished >= start,
                Book.date_finished <= end,
            )
            return (await self.db.execute(stmt)).scalar() or 0

        sessions = await self._sessions_in_window(start, end)

        if goal.type == GoalType.PAGES_PER_DAY:
            total = sum(s.pages_read for s in sessions)
            return total // self._days_elapsed(start, end, now)

        if goal.type == GoalType.MINUTES_PER_DAY:
            total = sum(s.duration_minutes for s in sessions)
            return total // self._days_elapsed(start, end, now)

        if goal.type == GoalType.READING_STREAK:
            days = sorted({local_day(s.start_date, self.tz) for s in sessions})
            longest, _ = longest_run(days)
            return longest

        logger.warning("Unknown goal type %s", goal.type)
        return goal.current_value

    async def _sessions_in_window(self, start: datetime, end: datetime) -> list[ReadingSession]:
        result = await self.db.execute(
            select(ReadingSession).where(
                ReadingSession.counts_toward_stats.is_(True),
                ReadingSession.start_date >= start,
                ReadingSession.start_date <= end,
            )
        )
        return list(result.scalars().unique().all())

    @staticmethod
    def _days_elapsed(start: datetime, end: datetime, now: datetime) -> int:
        return max(1, (min(now, end) - start).days)
