"""The active reading session state machine for this device.

Idle -> running -> paused <-> running -> completed or abandoned. Every local
change is committed before the peer hears about it.
"""

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
from readsync.errors import ActiveSessionConflictError, InvalidStateError, NoActiveSessionError
from readsync.models import ActiveReadingSession, Book, ReadingSession, ReadingStatus
from readsync.services import xp
from readsync.services.profile import get_profile
from readsync.services.reading_log import ReadingLog, require_book

if TYPE_CHECKING:
    from readsync.sync.service import SyncService

logger = logging.getLogger(__name__)


class ActiveSessionService:
    def __init__(self, db: AsyncSession, sync: SyncService, tz: ZoneInfo | None = None) -> None:
        self.db = db
        self.sync = sync
        self.tz = tz

    async def get_active(self) -> ActiveReadingSession | None:
        result = await self.db.execute(
            select(ActiveReadingSession).order_by(ActiveReadingSession.last_updated.desc())
        )
        return result.scalars().first()

    async def require_active(self) -> ActiveReadingSession:
        active = await self.get_active()
        if active is None:
            raise NoActiveSessionError("No active reading session")
        return active

    async def start(
        self,
        book_id: uuid.UUID,
        start_page: int | None = None,
        replace: bool = False,
        now: datetime | None = None,
    ) -> ActiveReadingSession:
        """Start reading ``book_id``.

        An existing active session, from either device, is only ended when the
        caller confirms with ``replace``; otherwise ActiveSessionConflictError.
        """
        now = as_utc(now or utcnow())
        existing = await self.get_active()
        if existing is not None and not replace:
            other = await self.db.get(Book, existing.book_id)
            raise ActiveSessionConflictError(existing.id, other.title if other else "", existing.source_device)

        book = await require_book(self.db, book_id)
        ended_id = None
        if existing is not None:
            ended_id = existing.id
            await self.db.delete(existing)
            logger.info("Replacing active session %s from %s", existing.id, existing.source_device)

        page = book.current_page if start_page is None else book.clamp_page(start_page)
        active = ActiveReadingSession(
            book_id=book.id,
            start_date=now,
            start_page=page,
            current_page=page,
            source_device=self.sync.device,
            last_updated=now,
        )
        self.db.add(active)

        status_changed = book.reading_status != ReadingStatus.CURRENTLY_READING
        if status_changed:
            book.reading_status = ReadingStatus.CURRENTLY_READING
            book.date_started = book.date_started or now

        await self._commit("active session start")
        logger.info("Started active session %s on %s at page %d", active.id, book.id, page)

        if ended_id is not None:
            await self.sync.send_session_end(ended_id, now)
        await self.sync.send_snapshot(active)
        if status_changed:
            await self.sync.broadcast_library(self.db)
        return active

    async def pause(self, now: datetime | None = None) -> ActiveReadingSession:
        now = as_utc(now or utcnow())
        active = await self.require_active()
        if active.is_paused:
            raise InvalidStateError("Session is already paused")
        active.is_paused = True
        active.paused_at = now
        active.touch(now)
        await self._commit("pause")
        await self.sync.send_snapshot(active)
        return active

    async def resume(self, now: datetime | None = None) -> ActiveReadingSession:
        now = as_utc(now or utcnow())
        active = await self.require_active()
        if not active.is_paused:
            raise InvalidStateError("Session is not paused")
        self._close_pause(active, now)
        active.touch(now)
        await self._commit("resume")
        await self.sync.send_snapshot(active)
        return active

    async def adjust_page(
        self, delta: int | None = None, page: int | None = None, now: datetime | None = None
    ) -> ActiveReadingSession:
        """Move the session's current page by ``delta`` or to ``page``.

        Deltas clamp to [start page, total pages]; an absolute page outside
        that range is rejected. The peer is updated after the debounce window.
        """
        now = as_utc(now or utcnow())
        active = await self.require_active()
        book = await require_book(self.db, active.book_id)

        if page is not None:
            if page < active.start_page or (book.page_ceiling is not None and page > book.page_ceiling):
                raise InvalidStateError(
                    f"Page {page} is outside {active.start_page}..{book.page_ceiling or 'end'}"
                )
            target = page
        elif delta is not None:
            target = book.clamp_page(active.current_page + delta, floor=active.start_page)
        else:
            raise InvalidStateError("Either delta or page is required")

        active.current_page = target
        book.current_page = target
        active.touch(now)
        await self._commit("page adjustment")
        self.sync.schedule_snapshot(active)
        return active

    async def complete(
        self, end_page: int | None = None, now: datetime | None = None
    ) -> ReadingSession | None:
        """Turn the active session into a saved ReadingSession.

        A session with no pages read is abandoned instead and returns None.
        """
        now = as_utc(now or utcnow())
        active = await self.require_active()
        book = await require_book(self.db, active.book_id)
        if end_page is not None:
            active.current_page = book.clamp_page(end_page, floor=active.start_page)

        if active.pages_read <= 0:
            logger.info("Active session %s ended with no progress, abandoning", active.id)
            await self.abandon(now)
            return None

        if active.is_paused:
            self._close_pause(active, now)

        profile = await get_profile(self.db)
        duration = active.duration_minutes(now)
        earned = xp.calculate(active.pages_read, duration)
        session = ReadingSession(
            book_id=book.id,
            start_date=active.start_date,
            end_date=now,
            start_page=active.start_page,
            end_page=active.current_page,
            duration_minutes=duration,
            xp_earned=earned,
            xp_awarded=True,
        )
        self.db.add(session)
        book.current_page = book.clamp_page(active.current_page)

        await ReadingLog(self.db, tz=self.tz).apply_session_effects(profile, session, earned, now)
        ended_id = active.id
        self.sync.cancel_snapshot(ended_id)
        await self.db.delete(active)
        await self._commit("completed session")
        logger.info(
            "Completed session %s: pages %d-%d, %d min, %d XP",
            session.id, session.start_page, session.end_page, duration, earned,
        )

        await self.sync.send_completion(ended_id, session)
        return session

    async def abandon(self, now: datetime | None = None) -> None:
        now = as_utc(now or utcnow())
        active = await self.require_active()
        ended_id = active.id
        self.sync.cancel_snapshot(ended_id)
        await self.db.delete(active)
        await self._commit("abandoned session")
        logger.info("Abandoned active session %s", ended_id)
        await self.sync.send_session_end(ended_id, now)

    @staticmethod
    def _close_pause(active: ActiveReadingSession, now: datetime) -> None:
        if active.paused_at is not None:
            active.total_paused_duration += max(0.0, (now - as_utc(active.paused_at)).total_seconds())
        active.is_paused = False
        active.paused_at = None

    async def _commit(self, what: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("Failed to save %s", what)
            raise
