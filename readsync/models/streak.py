import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from readsync.database import Base


class StreakEventType(StrEnum):
    DAY = "day"
    SAVED = "saved"
    LOST = "lost"
    STARTED = "started"


class StreakEvent(Base):
    """Append-only streak history. Rows are never updated or deleted."""

    __tablename__ = "streak_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    streak_length: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
