import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from readsync.database import Base


class ReadingStatus(StrEnum):
    WANT_TO_READ = "want_to_read"
    CURRENTLY_READING = "currently_reading"
    FINISHED = "finished"
    DID_NOT_FINISH = "did_not_finish"


class BookType(StrEnum):
    PHYSICAL = "physical"
    EBOOK = "ebook"
    AUDIOBOOK = "audiobook"


class Book(Base):
    __tablename__ = "books"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[str] = mapped_column(String(300), nullable=False)
    isbn: Mapped[str | None] = mapped_column(String(17))
    cover_image_url: Mapped[str | None] = mapped_column(String(500))
    total_pages: Mapped[int | None] = mapped_column(Integer)
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    book_type: Mapped[str] = mapped_column(String(20), default=BookType.PHYSICAL)
    reading_status: Mapped[str] = mapped_column(String(20), default=ReadingStatus.WANT_TO_READ)
    date_added: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    date_started: Mapped[datetime | None] = mapped_column(DateTime)
    date_finished: Mapped[datetime | None] = mapped_column(DateTime)
    notes: Mapped[str] = mapped_column(Text, default="")
    rating: Mapped[int | None] = mapped_column(Integer)

    sessions: Mapped[list["ReadingSession"]] = relationship(
        back_populates="book", cascade="all, delete-orphan"
    )
    active_sessions: Mapped[list["ActiveReadingSession"]] = relationship(
        back_populates="book", cascade="all, delete-orphan"
    )
    positions: Mapped[list["BookPosition"]] = relationship(
        back_populates="book", cascade="all, delete-orphan", order_by="BookPosition.timestamp"
    )
    quotes: Mapped[list["Quote"]] = relationship(back_populates="book", cascade="all, delete-orphan")

    def __init__(self, **kwargs):
        kwargs.setdefault("current_page", 0)
        kwargs.setdefault("reading_status", ReadingStatus.WANT_TO_READ)
        kwargs.setdefault("book_type", BookType.PHYSICAL)
        kwargs.setdefault("notes", "")
        super().__init__(**kwargs)

    @property
    def page_ceiling(self) -> int | None:
        return self.total_pages if self.total_pages and self.total_pages > 0 else None

    def clamp_page(self, page: int, floor: int = 0) -> int:
        page = max(floor, page)
        ceiling = self.page_ceiling
        return min(ceiling, page) if ceiling is not None else page


class BookPosition(Base):
    """Last-known bookmark: page plus optional line and note."""

    __tablename__ = "book_positions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    page_number: Mapped[int] = mapped_column(Integer)
    line_number: Mapped[int | None] = mapped_column(Integer)
    note: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship(back_populates="positions")


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    text: Mapped[str] = mapped_column(Text, nullable=False)
    page_number: Mapped[int | None] = mapped_column(Integer)
    note: Mapped[str | None] = mapped_column(Text)
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)
    date_added: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship(back_populates="quotes")
