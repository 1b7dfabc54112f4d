import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readsync.clock import as_utc, utcnow
from readsync.database import Base

# A session running longer than a week is clamped when converted to minutes
MAX_SESSION_MINUTES = 7 * 24 * 60


class ReadingSession(Base):
    """A completed quantum of reading. Immutable once saved except ``xp_awarded``."""

    __tablename__ = "reading_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_page: Mapped[int] = mapped_column(Integer, default=0)
    end_page: Mapped[int] = mapped_column(Integer, default=0)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, default=0)
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    counts_toward_stats: Mapped[bool] = mapped_column(Boolean, default=True)
    is_imported: Mapped[bool] = mapped_column(Boolean, default=False)
    xp_awarded: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship(back_populates="sessions", lazy="joined")

    def __init__(self, **kwargs):
        # Column defaults only land at flush; stats code reads these before that
        kwargs.setdefault("xp_earned", 0)
        kwargs.setdefault("is_auto_generated", False)
        kwargs.setdefault("counts_toward_stats", True)
        kwargs.setdefault("is_imported", False)
        kwargs.setdefault("xp_awarded", False)
        super().__init__(**kwargs)

    @property
    def pages_read(self) -> int:
        return self.end_page - self.start_page


class ActiveReadingSession(Base):
    """The one live reading-in-progress record, owned by whichever device started it."""

    __tablename__ = "active_reading_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_page: Mapped[int] = mapped_column(Integer, default=0)
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime)
    total_paused_duration: Mapped[float] = mapped_column(Float, default=0.0)
    source_device: Mapped[str] = mapped_column(String(20), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship(back_populates="active_sessions", lazy="joined")

    def __init__(self, **kwargs):
        kwargs.setdefault("is_paused", False)
        kwargs.setdefault("total_paused_duration", 0.0)
        super().__init__(**kwargs)

    def elapsed_seconds(self, at: datetime | None = None) -> float:
        """Reading time: wall clock since start minus every pause, including the open one."""
        at = as_utc(at or utcnow())
        start = as_utc(self.start_date)
        if at < start:
            return 0.0

        paused = self.total_paused_duration
        if self.is_paused and self.paused_at is not None:
            paused_at = as_utc(self.paused_at)
            if at >= paused_at:
                paused += (at - paused_at).total_seconds()

        return max(0.0, (at - start).total_seconds() - paused)

    def duration_minutes(self, at: datetime | None = None) -> int:
        minutes = int(self.elapsed_seconds(at) // 60)
        return max(1, min(minutes, MAX_SESSION_MINUTES))

    @property
    def pages_read(self) -> int:
        return self.current_page - self.start_page

    def touch(self, at: datetime | None = None) -> None:
        self.last_updated = at or utcnow()

    def should_auto_end(self, inactivity_hours: int, now: datetime | None = None) -> bool:
        now = as_utc(now or utcnow())
        return now - as_utc(self.last_updated) > timedelta(hours=inactivity_hours)
