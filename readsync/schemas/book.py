import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from readsync.models import BookType, ReadingStatus


class BookCreate(BaseModel):
    id: uuid.UUID | None = None  # derived from title and author when omitted
    title: str
    author: str
    isbn: str | None = None
    cover_image_url: str | None = None
    total_pages: int | None = Field(None, ge=0)
    current_page: int = Field(0, ge=0)
    book_type: BookType = BookType.PHYSICAL
    reading_status: ReadingStatus = ReadingStatus.WANT_TO_READ
    notes: str = ""


class BookUpdate(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    cover_image_url: str | None = None
    total_pages: int | None = Field(None, ge=0)
    book_type: BookType | None = None
    notes: str | None = None
    rating: int | None = Field(None, ge=1, le=5)


class StatusUpdate(BaseModel):
    reading_status: ReadingStatus


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    author: str
    isbn: str | None
    cover_image_url: str | None
    total_pages: int | None
    current_page: int
    book_type: str
    reading_status: str
    date_added: datetime
    date_started: datetime | None
    date_finished: datetime | None
    notes: str
    rating: int | None


class PositionCreate(BaseModel):
    page_number: int = Field(..., ge=0)
    line_number: int | None = Field(None, ge=1)
    note: str | None = None


class PositionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    book_id: uuid.UUID
    page_number: int
    line_number: int | None
    note: str | None
    timestamp: datetime


class QuoteCreate(BaseModel):
    text: str = Field(..., min_length=1)
    page_number: int | None = Field(None, ge=0)
    note: str | None = None
    is_favorite: bool = False


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    book_id: uuid.UUID
    text: str
    page_number: int | None
    note: str | None
    is_favorite: bool
    date_added: datetime
