"""Completed reading sessions: recording, quick progress and deletion."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import as_utc, utcnow
from readsync.errors import InvalidStateError, NotFoundError, OrphanedReferenceError
from readsync.models import Book, ReadingSession, ReadingStatus, UserProfile
from readsync.services import xp
from readsync.services.gamification import GamificationEngine
from readsync.services.goal_tracker import GoalTracker
from readsync.services.profile import get_profile

if TYPE_CHECKING:
    from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)


async def require_book(db: AsyncSession, book_id: uuid.UUID) -> Book:
    """Load the book a write refers to, or raise OrphanedReferenceError."""
    book = await db.get(Book, book_id)
    if book is None:
        raise OrphanedReferenceError(book_id)
    return book


class ReadingLog:
    def __init__(self, db: AsyncSession, sync: SyncService | None = None, tz: ZoneInfo | None = None) -> None:
        self.db = db
        self.sync = sync
        self.tz = tz

    async def apply_session_effects(
        self,
        profile: UserProfile,
        session: ReadingSession,
        xp_delta: int,
        now: datetime | None = None,
    ) -> None:
        """Credit XP and advance streak, goals and achievements for a saved session.

        ``xp_delta`` is what this device has not yet credited for the session.
        Imported sessions never touch stats.
        """
        now = as_utc(now or utcnow())
        engine = GamificationEngine(self.db, self.tz)
        if session.counts_toward_stats:
            engine.award_xp(profile, xp_delta)
            if session.pages_read > 0:
                await engine.update_streak(profile, session.start_date, now)
        await GoalTracker(self.db, self.tz).update_goals(profile, now)
        await engine.check_achievements(profile)

    async def list_sessions(
        self, book_id: uuid.UUID | None = None, include_auto: bool = True
    ) -> list[ReadingSession]:
        stmt = select(ReadingSession).order_by(ReadingSession.end_date.desc())
        if book_id is not None:
            stmt = stmt.where(ReadingSession.book_id == book_id)
        if not include_auto:
            stmt = stmt.where(ReadingSession.is_auto_generated.is_(False))
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def quick_progress(
        self, book_id: uuid.UUID, delta: int, now: datetime | None = None
    ) -> tuple[Book, ReadingSession | None]:
        """Move the book by ``delta`` pages outside a timed session.

        Forward progress is logged as an auto-generated session worth XP. A
        negative tap only corrects the page.
        """
        if delta == 0:
            raise InvalidStateError("Page delta must not be zero")
        now = as_utc(now or utcnow())
        book = await require_book(self.db, book_id)
        profile = await get_profile(self.db)

        start_page = book.current_page
        end_page = book.clamp_page(start_page + delta)
        book.current_page = end_page
        if book.reading_status == ReadingStatus.WANT_TO_READ and end_page > start_page:
            book.reading_status = ReadingStatus.CURRENTLY_READING
            book.date_started = book.date_started or now

        session = None
        if end_page > start_page:
            earned = xp.calculate(end_page - start_page, 0)
            session = ReadingSession(
                book_id=book.id,
                start_date=now,
                end_date=now,
                start_page=start_page,
                end_page=end_page,
                duration_minutes=0,
                xp_earned=earned,
                is_auto_generated=True,
                xp_awarded=True,
            )
            self.db.add(session)
            await self.apply_session_effects(profile, session, earned, now)

        await self._commit("quick progress")
        logger.info("Quick progress on %s: %d -> %d", book.id, start_page, end_page)

        if self.sync is not None:
            await self.sync.send_page_delta(book.id, end_page - start_page, end_page)
            if session is not None:
                await self.sync.send_completion(None, session)
        return book, session

    async def delete_sessions(self, session_ids: list[uuid.UUID], now: datetime | None = None) -> int:
        """Delete completed sessions and recalculate everything derived from them.

        A book whose page was at its latest session's end follows the new
        latest session. Returns the number of sessions deleted.
        """
        now = as_utc(now or utcnow())
        result = await self.db.execute(select(ReadingSession).where(ReadingSession.id.in_(session_ids)))
        doomed = list(result.scalars().unique().all())
        if not doomed:
            raise NotFoundError("No matching sessions")

        book_ids = {s.book_id for s in doomed}
        doomed_ids = {s.id for s in doomed}
        realigned: dict[uuid.UUID, int] = {}
        for book_id in book_ids:
            new_page = await self._realign_page(book_id, doomed_ids, doomed)
            if new_page is not None:
                realigned[book_id] = new_page

        for session in doomed:
            await self.db.delete(session)
        await self.db.flush()

        profile = await get_profile(self.db)
        await GamificationEngine(self.db, self.tz).recalculate_stats(profile, now)
        await GoalTracker(self.db, self.tz).update_goals(profile, now)
        await self._commit("session deletion")
        logger.info("Deleted %d sessions", len(doomed))

        if self.sync is not None:
            await self.sync.send_session_deletion(list(doomed_ids))
            for book_id, page in realigned.items():
                await self.sync.send_page_delta(book_id, 0, page)
        return len(doomed)

    async def _realign_page(
        self, book_id: uuid.UUID, doomed_ids: set[uuid.UUID], doomed: list[ReadingSession]
    ) -> int | None:
        book = await self.db.get(Book, book_id)
        if book is None:
            return None
        result = await self.db.execute(
            select(ReadingSession)
            .where(ReadingSession.book_id == book_id)
            .order_by(ReadingSession.end_date.desc())
        )
        history = list(result.scalars().unique().all())
        if not history or history[0].end_page != book.current_page:
            return None

        remaining = [s for s in history if s.id not in doomed_ids]
        if remaining:
            new_page = remaining[0].end_page
        else:
            new_page = min(s.start_page for s in doomed if s.book_id == book_id)
        book.current_page = book.clamp_page(new_page)

        if (
            book.reading_status == ReadingStatus.FINISHED
            and book.page_ceiling is not None
            and book.current_page < book.page_ceiling
        ):
            book.reading_status = ReadingStatus.CURRENTLY_READING
            book.date_finished = None
        return book.current_page

    async def _commit(self, what: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Failed to save %s", what)
            raise
