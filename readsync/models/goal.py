import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readsync.clock import as_utc, utcnow
from readsync.database import Base


class GoalType(StrEnum):
    BOOKS_PER_YEAR = "books_per_year"
    BOOKS_PER_MONTH = "books_per_month"
    PAGES_PER_DAY = "pages_per_day"
    MINUTES_PER_DAY = "minutes_per_day"
    READING_STREAK = "reading_streak"


class ReadingGoal(Base):
    __tablename__ = "reading_goals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    profile: Mapped["UserProfile"] = relationship(back_populates="goals")

    def is_active(self, now: datetime | None = None) -> bool:
        now = as_utc(now or utcnow())
        return as_utc(self.start_date) <= now <= as_utc(self.end_date) and not self.is_completed

    @property
    def progress_percentage(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return min(100.0, self.current_value / self.target_value * 100)
