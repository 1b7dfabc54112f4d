import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StartSessionRequest(BaseModel):
    book_id: uuid.UUID
    start_page: int | None = Field(None, ge=0)  # defaults to the book's current page
    replace: bool = False  # confirm ending an active session first


class AdjustPageRequest(BaseModel):
    delta: int | None = None
    page: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def one_of(self):
        if (self.delta is None) == (self.page is None):
            raise ValueError("Provide exactly one of delta or page")
        return self


class CompleteSessionRequest(BaseModel):
    end_page: int | None = Field(None, ge=0)


class QuickProgressRequest(BaseModel):
    book_id: uuid.UUID
    delta: int


class DeleteSessionsRequest(BaseModel):
    session_ids: list[uuid.UUID] = Field(..., min_length=1)


class ActiveSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    book_id: uuid.UUID
    start_date: datetime
    start_page: int
    current_page: int
    is_paused: bool
    paused_at: datetime | None
    total_paused_duration: float
    source_device: str
    last_updated: datetime
    pages_read: int
    elapsed_time: float = 0.0  # seconds of reading, pauses excluded


class ReadingSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    book_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    start_page: int
    end_page: int
    pages_read: int
    duration_minutes: int
    xp_earned: int
    is_auto_generated: bool
    counts_toward_stats: bool
    is_imported: bool
    xp_awarded: bool


class CompleteSessionResponse(BaseModel):
    completed: bool
    session: ReadingSessionResponse | None = None


class QuickProgressResponse(BaseModel):
    book_id: uuid.UUID
    current_page: int
    session: ReadingSessionResponse | None = None
