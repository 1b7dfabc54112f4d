import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readsync.database import Base

XP_PER_LEVEL = 1000


class UserProfile(Base):
    """Per-install singleton holding XP, streak state and display preferences."""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    total_xp: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_reading_date: Mapped[datetime | None] = mapped_column(DateTime)
    last_pardon_date: Mapped[datetime | None] = mapped_column(DateTime)
    streaks_paused: Mapped[bool] = mapped_column(Boolean, default=False)

    # Display preferences mirrored to the watch
    page_increment_amount: Mapped[int] = mapped_column(Integer, default=1)
    use_circular_progress_watch: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_watch_position_marking: Mapped[bool] = mapped_column(Boolean, default=True)
    hide_auto_sessions_phone: Mapped[bool] = mapped_column(Boolean, default=False)
    hide_auto_sessions_watch: Mapped[bool] = mapped_column(Boolean, default=False)
    show_settings_on_watch: Mapped[bool] = mapped_column(Boolean, default=True)

    # Stale active session handling
    auto_end_session_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_end_session_hours: Mapped[int] = mapped_column(Integer, default=24)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    achievements: Mapped[list["Achievement"]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )
    goals: Mapped[list["ReadingGoal"]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )

    @property
    def current_level(self) -> int:
        return max(0, self.total_xp) // XP_PER_LEVEL + 1

    @property
    def xp_for_next_level(self) -> int:
        return self.current_level * XP_PER_LEVEL

    @property
    def xp_progress_in_level(self) -> int:
        return max(0, self.total_xp) % XP_PER_LEVEL


class AchievementType(StrEnum):
    FIRST_BOOK = "first_book"
    TEN_BOOKS = "ten_books"
    FIFTY_BOOKS = "fifty_books"
    HUNDRED_BOOKS = "hundred_books"
    HUNDRED_PAGES = "hundred_pages"
    THOUSAND_PAGES = "thousand_pages"
    TEN_THOUSAND_PAGES = "ten_thousand_pages"
    SEVEN_DAY_STREAK = "seven_day_streak"
    THIRTY_DAY_STREAK = "thirty_day_streak"
    HUNDRED_DAY_STREAK = "hundred_day_streak"
    LEVEL_FIVE = "level_five"
    LEVEL_TEN = "level_ten"
    LEVEL_TWENTY = "level_twenty"
    HUNDRED_PAGES_IN_DAY = "hundred_pages_in_day"
    MARATHON_READER = "marathon_reader"


class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("profile_id", "type"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    profile: Mapped["UserProfile"] = relationship(back_populates="achievements")
