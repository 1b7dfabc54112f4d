"""Cross-device reconciliation.

One SyncService per device process. Outgoing messages describe changes
already committed locally; incoming messages are applied in their own unit
of work. Transport and decode failures are logged and dropped, never raised.
"""

import logging
import uuid
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from readsync import events
from readsync.clock import as_utc, utcnow
from readsync.config import DEVICE_NAME, PHONE
from readsync.database import async_session
from readsync.errors import ReadSyncError
from readsync.events import EventBus
from readsync.models import (
    ActiveReadingSession,
    Book,
    BookPosition,
    Quote,
    ReadingSession,
    ReadingStatus,
    UserProfile,
)
from readsync.schemas.transfer import (
    PROFILE_SETTING_FIELDS,
    ActiveSessionEnd,
    ActiveSessionSnapshot,
    BookPositionTransfer,
    BookTransfer,
    CompletedSessionTransfer,
    Envelope,
    LibraryBroadcast,
    PageDelta,
    ProfileSettings,
    ProfileStats,
    QuotesTransfer,
    QuoteTransfer,
    SessionCompletion,
    SessionDeletion,
    envelope_adapter,
)
from readsync.services import xp
from readsync.services.profile import get_profile
from readsync.services.reading_log import ReadingLog
from readsync.sync.channel import LoopbackChannel, MessageChannel
from readsync.sync.debounce import Debouncer

logger = logging.getLogger(__name__)

ENDED_SESSION_MEMORY = timedelta(hours=24)
CLOCK_SKEW_TOLERANCE = timedelta(seconds=300)
DUPLICATE_TOLERANCE = timedelta(minutes=5)
MAX_FUTURE_END = timedelta(minutes=5)
MAX_SESSION_MINUTES = 24 * 60


def validate_completion(session: CompletedSessionTransfer, now: datetime) -> str | None:
    """Return why a received completed session is unusable, or None."""
    start = as_utc(session.start_date)
    end = as_utc(session.end_date)
    if end < start:
        return "ends before it starts"
    if end > now + MAX_FUTURE_END:
        return "ends in the future"
    if session.start_page < 0 or session.end_page < 0:
        return "negative page"
    if not 0 <= session.duration_minutes < MAX_SESSION_MINUTES:
        return f"duration {session.duration_minutes} min out of range"
    return None


def book_to_transfer(book: Book) -> BookTransfer:
    return BookTransfer(
        id=book.id,
        title=book.title,
        author=book.author,
        isbn=book.isbn,
        cover_image_url=book.cover_image_url,
        total_pages=book.total_pages,
        current_page=book.current_page,
        book_type=book.book_type,
        reading_status=book.reading_status,
        date_added=as_utc(book.date_added),
        notes=book.notes or "",
    )


def session_to_transfer(session: ReadingSession) -> CompletedSessionTransfer:
    return CompletedSessionTransfer(
        id=session.id,
        book_uuid=session.book_id,
        start_date=as_utc(session.start_date),
        end_date=as_utc(session.end_date),
        start_page=session.start_page,
        end_page=session.end_page,
        duration_minutes=session.duration_minutes,
        xp_earned=session.xp_earned,
        xp_awarded=session.xp_awarded,
        is_auto_generated=session.is_auto_generated,
        counts_toward_stats=session.counts_toward_stats,
    )


def snapshot_of(active: ActiveReadingSession, now: datetime | None = None) -> ActiveSessionSnapshot:
    return ActiveSessionSnapshot(
        session_id=active.id,
        book_uuid=active.book_id,
        start_date=as_utc(active.start_date),
        start_page=active.start_page,
        current_page=active.current_page,
        is_paused=active.is_paused,
        paused_at=as_utc(active.paused_at) if active.paused_at else None,
        total_paused_duration=active.total_paused_duration,
        source_device=active.source_device,
        last_updated=as_utc(active.last_updated),
        sent_at=as_utc(now or utcnow()),
    )


class SyncService:
    def __init__(
        self,
        channel: MessageChannel | None = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        device: str = DEVICE_NAME,
        events_bus: EventBus | None = None,
        debouncer: Debouncer | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self.channel = channel or LoopbackChannel()
        self.session_factory = session_factory
        self.device = device
        self.events = events_bus or EventBus()
        self.debouncer = debouncer or Debouncer()
        self.tz = tz
        self._ended_sessions: dict[uuid.UUID, datetime] = {}
        self._last_delta_at: dict[uuid.UUID, datetime] = {}

    # -- outgoing -----------------------------------------------------------

    async def send(self, message: Envelope) -> bool:
        if not self.channel.reachable:
            logger.info("Peer unreachable, not sending %s", message.kind)
            return False
        return await self.channel.send(message)

    async def send_page_delta(self, book_id: uuid.UUID, delta: int, new_page: int | None = None) -> bool:
        return await self.send(
            PageDelta(book_uuid=book_id, delta=delta, new_page=new_page, timestamp=utcnow())
        )

    async def send_snapshot(self, active: ActiveReadingSession) -> bool:
        self.debouncer.cancel(active.id)
        return await self.send(snapshot_of(active))

    def schedule_snapshot(self, active: ActiveReadingSession) -> None:
        """Send the session state once page taps settle. Each call restarts the window."""
        snapshot = snapshot_of(active)

        async def fire() -> None:
            await self.send(snapshot.model_copy(update={"sent_at": utcnow()}))

        self.debouncer.schedule(active.id, fire)

    def cancel_snapshot(self, session_id: uuid.UUID) -> None:
        self.debouncer.cancel(session_id)

    async def send_session_end(self, session_id: uuid.UUID, ended_at: datetime | None = None) -> bool:
        self.cancel_snapshot(session_id)
        self._remember_ended(session_id)
        return await self.send(ActiveSessionEnd(session_id=session_id, ended_at=ended_at or utcnow()))

    async def send_completion(self, ended_session_id: uuid.UUID | None, session: ReadingSession) -> bool:
        """Send a saved session. Without an ended active session there is no live activity to end."""
        if ended_session_id is not None:
            self.cancel_snapshot(ended_session_id)
            self._remember_ended(ended_session_id)
        return await self.send(
            SessionCompletion(
                ended_active_session_id=ended_session_id,
                completed_session=session_to_transfer(session),
                live_activity_end_signal=ended_session_id is not None,
            )
        )

    async def send_session_deletion(self, session_ids: list[uuid.UUID]) -> bool:
        return await self.send(SessionDeletion(session_ids=session_ids))

    async def send_profile_settings(self, profile: UserProfile) -> bool:
        return await self.send(
            ProfileSettings(**{name: getattr(profile, name) for name in PROFILE_SETTING_FIELDS})
        )

    async def send_profile_stats(self, profile: UserProfile) -> bool:
        """Push XP and streak totals. Only the phone's totals are authoritative."""
        if self.device != PHONE:
            return False
        return await self.send(
            ProfileStats(
                total_xp=profile.total_xp,
                current_streak=profile.current_streak,
                longest_streak=profile.longest_streak,
                last_reading_date=as_utc(profile.last_reading_date) if profile.last_reading_date else None,
                last_pardon_date=as_utc(profile.last_pardon_date) if profile.last_pardon_date else None,
                sent_at=utcnow(),
            )
        )

    async def send_position(self, position: BookPosition) -> bool:
        return await self.send(
            BookPositionTransfer(
                id=position.id,
                book_uuid=position.book_id,
                page_number=position.page_number,
                line_number=position.line_number,
                note=position.note,
                timestamp=as_utc(position.timestamp),
            )
        )

    async def send_quotes(self, book_id: uuid.UUID, quotes: list[Quote]) -> bool:
        if not quotes:
            return False
        return await self.send(
            QuotesTransfer(
                book_uuid=book_id,
                quotes=[
                    QuoteTransfer(
                        id=q.id,
                        text=q.text,
                        page_number=q.page_number,
                        note=q.note,
                        is_favorite=q.is_favorite,
                        date_added=as_utc(q.date_added),
                    )
                    for q in quotes
                ],
            )
        )

    async def broadcast_library(self, db: AsyncSession) -> LibraryBroadcast | None:
        """Publish the currently-reading set. Only the phone owns the library."""
        if self.device != PHONE:
            return None
        result = await db.execute(
            select(Book)
            .where(Book.reading_status == ReadingStatus.CURRENTLY_READING)
            .order_by(Book.date_added)
        )
        broadcast = LibraryBroadcast(
            books=[book_to_transfer(b) for b in result.scalars().all()],
            sent_at=utcnow(),
        )
        await self.channel.update_context(broadcast)
        logger.info("Broadcast %d currently-reading books", len(broadcast.books))
        return broadcast

    async def close(self) -> None:
        self.debouncer.cancel_all()
        await self.channel.close()

    # -- incoming -----------------------------------------------------------

    async def receive_raw(self, payload: dict) -> bool:
        try:
            message = envelope_adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning("Dropped undecodable message: %s", e)
            return False
        return await self.receive(message)

    async def receive(self, message: Envelope, now: datetime | None = None) -> bool:
        """Apply one peer message. Returns whether it changed local state."""
        now = as_utc(now or utcnow())
        handler = {
            "page_delta": self._apply_page_delta,
            "active_session": self._apply_snapshot,
            "active_session_end": self._apply_session_end,
            "session_completion": self._apply_completion,
            "session_deletion": self._apply_deletion,
            "profile_settings": self._apply_profile_settings,
            "profile_stats": self._apply_profile_stats,
            "book_position": self._apply_position,
            "quotes": self._apply_quotes,
        }[message.kind]

        async with self.session_factory() as db:
            try:
                applied = await handler(db, message, now)
            except (SQLAlchemyError, ReadSyncError):
                await db.rollback()
                logger.exception("Failed to apply %s message", message.kind)
                return False

        if applied:
            await self._notify(message)
            if self.device == PHONE and isinstance(message, (SessionCompletion, SessionDeletion)):
                await self._push_profile_stats()
        return applied

    async def receive_context_raw(self, payload: dict) -> bool:
        try:
            broadcast = LibraryBroadcast.model_validate(payload)
        except ValidationError as e:
            logger.warning("Dropped undecodable library broadcast: %s", e)
            return False
        return await self.receive_context(broadcast)

    async def receive_context(self, broadcast: LibraryBroadcast) -> bool:
        """Replace the local currently-reading library with the broadcast one."""
        if self.device == PHONE:
            logger.info("Ignoring library broadcast; this device owns the library")
            return False

        async with self.session_factory() as db:
            try:
                incoming = {b.id: b for b in broadcast.books}
                local = {b.id: b for b in (await db.execute(select(Book))).scalars().all()}

                for book_id, book in local.items():
                    if book_id not in incoming:
                        await db.delete(book)
                for book_id, transfer in incoming.items():
                    book = local.get(book_id)
                    if book is None:
                        book = Book(id=book_id)
                        db.add(book)
                    _apply_book_transfer(book, transfer)
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Failed to apply library broadcast")
                return False

        removed = len(set(local) - set(incoming))
        logger.info("Library synced: %d books, %d removed", len(incoming), removed)
        await self.events.emit(events.LIBRARY_SYNCED, book_ids=list(incoming))
        return True

    async def _apply_page_delta(self, db: AsyncSession, message: PageDelta, now: datetime) -> bool:
        timestamp = as_utc(message.timestamp)
        last = self._last_delta_at.get(message.book_uuid)
        if last is not None and timestamp <= last:
            logger.info("Ignoring stale page delta for %s", message.book_uuid)
            return False

        book = await db.get(Book, message.book_uuid)
        if book is None:
            logger.warning("Page delta for unknown book %s dropped", message.book_uuid)
            return False

        target = message.new_page if message.new_page is not None else book.current_page + message.delta
        book.current_page = book.clamp_page(target)
        await db.commit()
        self._last_delta_at[message.book_uuid] = timestamp
        return True

    async def _apply_snapshot(self, db: AsyncSession, message: ActiveSessionSnapshot, now: datetime) -> bool:
        self._prune_ended(now)
        if message.session_id in self._ended_sessions:
            logger.info("Ignoring snapshot for ended session %s", message.session_id)
            return False

        book = await db.get(Book, message.book_uuid)
        if book is None:
            logger.warning("Snapshot for unknown book %s dropped", message.book_uuid)
            return False

        # Shift the sender's clock onto ours when the offset looks like skew, not transit delay
        offset = now - as_utc(message.sent_at)
        if abs(offset) > CLOCK_SKEW_TOLERANCE:
            offset = timedelta(0)
        start_date = as_utc(message.start_date) + offset
        last_updated = as_utc(message.last_updated) + offset
        paused_at = None
        if message.paused_at is not None:
            paused_at = min(as_utc(message.paused_at) + offset, now)
        max_paused = max(0.0, (now - start_date).total_seconds())
        paused_total = min(max(0.0, message.total_paused_duration), max_paused)
        current_page = book.clamp_page(message.current_page, floor=message.start_page)

        result = await db.execute(select(ActiveReadingSession))
        active = None
        for existing in result.scalars().all():
            if existing.id == message.session_id:
                active = existing
            else:
                # At most one active session: the peer's snapshot supersedes ours
                logger.info("Snapshot %s replaces local active session %s", message.session_id, existing.id)
                await db.delete(existing)

        if active is not None and as_utc(active.last_updated) > last_updated:
            logger.info("Ignoring out-of-date snapshot for %s", message.session_id)
            return False
        if active is None:
            active = ActiveReadingSession(id=message.session_id)
            db.add(active)

        active.book_id = message.book_uuid
        active.start_date = start_date
        active.start_page = message.start_page
        active.current_page = current_page
        active.is_paused = message.is_paused
        active.paused_at = paused_at if message.is_paused else None
        active.total_paused_duration = paused_total
        active.source_device = message.source_device
        active.last_updated = last_updated
        book.current_page = current_page
        await db.commit()
        return True

    async def _apply_session_end(self, db: AsyncSession, message: ActiveSessionEnd, now: datetime) -> bool:
        self._remember_ended(message.session_id, now)
        self.cancel_snapshot(message.session_id)
        await db.execute(delete(ActiveReadingSession).where(ActiveReadingSession.id == message.session_id))
        await db.commit()
        logger.info("Peer ended active session %s", message.session_id)
        return True

    async def _apply_completion(self, db: AsyncSession, message: SessionCompletion, now: datetime) -> bool:
        transfer = message.completed_session
        problem = validate_completion(transfer, now)
        if problem is not None:
            logger.warning("Dropped completed session %s: %s", transfer.id, problem)
            return False

        book = await db.get(Book, transfer.book_uuid)
        if book is None:
            logger.warning("Completed session %s for unknown book %s dropped", transfer.id, transfer.book_uuid)
            return False

        if message.ended_active_session_id is not None:
            self._remember_ended(message.ended_active_session_id, now)
            self.cancel_snapshot(message.ended_active_session_id)
            await db.execute(
                delete(ActiveReadingSession).where(
                    ActiveReadingSession.id == message.ended_active_session_id
                )
            )

        earned = xp.calculate(transfer.pages_read, transfer.duration_minutes)
        session = await self._find_duplicate(db, transfer)
        if session is None:
            session = ReadingSession(id=transfer.id, book_id=book.id, xp_awarded=False, xp_earned=0)
            db.add(session)
            is_new = True
        else:
            is_new = False

        if session.xp_awarded:
            # Already credited here; only a recalculated difference may move XP
            xp_delta = earned - session.xp_earned
        else:
            xp_delta = earned

        session.start_date = as_utc(transfer.start_date)
        session.end_date = as_utc(transfer.end_date)
        session.start_page = transfer.start_page
        session.end_page = transfer.end_page
        session.duration_minutes = transfer.duration_minutes
        session.is_auto_generated = transfer.is_auto_generated
        session.counts_toward_stats = transfer.counts_toward_stats
        session.xp_earned = earned
        session.xp_awarded = True
        if is_new:
            book.current_page = book.clamp_page(max(book.current_page, transfer.end_page))

        profile = await get_profile(db)
        log = ReadingLog(db, tz=self.tz)
        if is_new:
            await log.apply_session_effects(profile, session, xp_delta, now)
        elif xp_delta and session.counts_toward_stats:
            profile.total_xp = max(0, profile.total_xp + xp_delta)
        await db.commit()
        logger.info(
            "Received completed session %s (%s), credited %d XP",
            session.id, "new" if is_new else "duplicate", xp_delta if session.counts_toward_stats else 0,
        )
        return True

    async def _apply_deletion(self, db: AsyncSession, message: SessionDeletion, now: datetime) -> bool:
        result = await db.execute(
            select(ReadingSession.id).where(ReadingSession.id.in_(message.session_ids))
        )
        known = list(result.scalars().all())
        if not known:
            return False
        await ReadingLog(db, tz=self.tz).delete_sessions(known, now)
        return True

    async def _apply_profile_settings(self, db: AsyncSession, message: ProfileSettings, now: datetime) -> bool:
        profile = await get_profile(db)
        for name in PROFILE_SETTING_FIELDS:
            setattr(profile, name, getattr(message, name))
        await db.commit()
        return True

    async def _apply_profile_stats(self, db: AsyncSession, message: ProfileStats, now: datetime) -> bool:
        if self.device == PHONE:
            logger.info("Ignoring profile stats from the watch; this device owns them")
            return False
        profile = await get_profile(db)
        profile.total_xp = max(0, message.total_xp)
        profile.current_streak = max(0, message.current_streak)
        profile.longest_streak = max(message.longest_streak, profile.current_streak)
        profile.last_reading_date = as_utc(message.last_reading_date) if message.last_reading_date else None
        if message.last_pardon_date is not None:
            profile.last_pardon_date = as_utc(message.last_pardon_date)
        await db.commit()
        logger.info("Profile stats synced: %d XP, streak %d", profile.total_xp, profile.current_streak)
        return True

    async def _apply_position(self, db: AsyncSession, message: BookPositionTransfer, now: datetime) -> bool:
        book = await db.get(Book, message.book_uuid)
        if book is None:
            logger.warning("Position for unknown book %s dropped", message.book_uuid)
            return False
        position = await db.get(BookPosition, message.id)
        if position is None:
            position = BookPosition(id=message.id, book_id=book.id)
            db.add(position)
        position.page_number = book.clamp_page(message.page_number)
        position.line_number = message.line_number
        position.note = message.note
        position.timestamp = as_utc(message.timestamp)
        await db.commit()
        return True

    async def _apply_quotes(self, db: AsyncSession, message: QuotesTransfer, now: datetime) -> bool:
        book = await db.get(Book, message.book_uuid)
        if book is None:
            logger.warning("Quotes for unknown book %s dropped", message.book_uuid)
            return False
        for transfer in message.quotes:
            quote = await db.get(Quote, transfer.id)
            if quote is None:
                quote = Quote(id=transfer.id, book_id=book.id)
                db.add(quote)
            quote.text = transfer.text
            quote.page_number = transfer.page_number
            quote.note = transfer.note
            quote.is_favorite = transfer.is_favorite
            quote.date_added = as_utc(transfer.date_added)
        await db.commit()
        logger.info("Synced %d quotes for %s", len(message.quotes), book.id)
        return True

    async def _push_profile_stats(self) -> None:
        async with self.session_factory() as db:
            profile = await get_profile(db)
        await self.send_profile_stats(profile)

    async def _find_duplicate(self, db: AsyncSession, transfer: CompletedSessionTransfer) -> ReadingSession | None:
        session = await db.get(ReadingSession, transfer.id)
        if session is not None:
            return session
        start = as_utc(transfer.start_date)
        end = as_utc(transfer.end_date)
        result = await db.execute(
            select(ReadingSession).where(
                ReadingSession.book_id == transfer.book_uuid,
                ReadingSession.start_date >= start - DUPLICATE_TOLERANCE,
                ReadingSession.start_date <= start + DUPLICATE_TOLERANCE,
                ReadingSession.end_date >= end - DUPLICATE_TOLERANCE,
                ReadingSession.end_date <= end + DUPLICATE_TOLERANCE,
            )
        )
        return result.scalars().first()

    async def _notify(self, message: Envelope) -> None:
        if isinstance(message, SessionCompletion):
            if message.live_activity_end_signal:
                await self.events.emit(
                    events.LIVE_ACTIVITY_END, session_id=message.ended_active_session_id
                )
            await self.events.emit(events.SESSION_RECEIVED, session_id=message.completed_session.id)
        elif isinstance(message, ActiveSessionEnd):
            await self.events.emit(events.LIVE_ACTIVITY_END, session_id=message.session_id)
            await self.events.emit(events.ACTIVE_SESSION_CHANGED, session_id=None)
        elif isinstance(message, ActiveSessionSnapshot):
            await self.events.emit(events.ACTIVE_SESSION_CHANGED, session_id=message.session_id)
        elif isinstance(message, ProfileSettings):
            await self.events.emit(events.PROFILE_SETTINGS_CHANGED)
        elif isinstance(message, ProfileStats):
            await self.events.emit(events.PROFILE_STATS_CHANGED)

    def _remember_ended(self, session_id: uuid.UUID, now: datetime | None = None) -> None:
        now = as_utc(now or utcnow())
        self._prune_ended(now)
        self._ended_sessions[session_id] = now

    def _prune_ended(self, now: datetime) -> None:
        cutoff = now - ENDED_SESSION_MEMORY
        for session_id, ended_at in list(self._ended_sessions.items()):
            if ended_at < cutoff:
                del self._ended_sessions[session_id]

    def is_ended(self, session_id: uuid.UUID) -> bool:
        return session_id in self._ended_sessions


def _apply_book_transfer(book: Book, transfer: BookTransfer) -> None:
    book.title = transfer.title
    book.author = transfer.author
    book.isbn = transfer.isbn
    book.cover_image_url = transfer.cover_image_url
    book.total_pages = transfer.total_pages
    book.current_page = transfer.current_page
    book.book_type = transfer.book_type
    book.reading_status = transfer.reading_status
    book.date_added = as_utc(transfer.date_added)
    book.notes = transfer.notes
