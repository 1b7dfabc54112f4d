"""Wire records exchanged between the two devices.

Python attributes are snake_case; JSON uses the camelCase names both devices
agree on. Every peer message is one envelope discriminated by ``kind``.
"""

import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class BookTransfer(WireModel):
    id: uuid.UUID
    title: str
    author: str
    isbn: str | None = None
    cover_image_url: str | None = Field(None, alias="coverImageURL")
    total_pages: int | None = None
    current_page: int = 0
    book_type: str = "physical"
    reading_status: str
    date_added: datetime
    notes: str = ""


class CompletedSessionTransfer(WireModel):
    id: uuid.UUID
    book_uuid: uuid.UUID = Field(alias="bookUUID")
    start_date: datetime
    end_date: datetime
    start_page: int
    end_page: int
    duration_minutes: int
    xp_earned: int = 0
    xp_awarded: bool = False
    is_auto_generated: bool = False
    counts_toward_stats: bool = True

    @property
    def pages_read(self) -> int:
        return self.end_page - self.start_page


class PageDelta(WireModel):
    kind: Literal["page_delta"] = "page_delta"
    book_uuid: uuid.UUID = Field(alias="bookUUID")
    delta: int
    new_page: int | None = None
    timestamp: datetime


class ActiveSessionSnapshot(WireModel):
    kind: Literal["active_session"] = "active_session"
    session_id: uuid.UUID
    book_uuid: uuid.UUID = Field(alias="bookUUID")
    start_date: datetime
    start_page: int
    current_page: int
    is_paused: bool = False
    paused_at: datetime | None = None
    total_paused_duration: float = 0.0
    source_device: str
    last_updated: datetime
    sent_at: datetime


class ActiveSessionEnd(WireModel):
    kind: Literal["active_session_end"] = "active_session_end"
    session_id: uuid.UUID
    ended_at: datetime


class SessionCompletion(WireModel):
    """Delivered whole: the ended active session, the saved session and the live-activity signal."""

    kind: Literal["session_completion"] = "session_completion"
    ended_active_session_id: uuid.UUID | None = None
    completed_session: CompletedSessionTransfer
    live_activity_end_signal: bool = True


class SessionDeletion(WireModel):
    kind: Literal["session_deletion"] = "session_deletion"
    session_ids: list[uuid.UUID]


class ProfileSettings(WireModel):
    kind: Literal["profile_settings"] = "profile_settings"
    page_increment_amount: int = Field(1, ge=1)
    use_circular_progress_watch: bool = False
    enable_watch_position_marking: bool = True
    hide_auto_sessions_phone: bool = False
    hide_auto_sessions_watch: bool = False
    show_settings_on_watch: bool = True
    streaks_paused: bool = False


class ProfileStats(WireModel):
    """The phone's XP and streak totals. The watch overwrites its own with them."""

    kind: Literal["profile_stats"] = "profile_stats"
    total_xp: int = Field(alias="totalXP")
    current_streak: int
    longest_streak: int
    last_reading_date: datetime | None = None
    last_pardon_date: datetime | None = None
    sent_at: datetime


class BookPositionTransfer(WireModel):
    kind: Literal["book_position"] = "book_position"
    id: uuid.UUID
    book_uuid: uuid.UUID = Field(alias="bookUUID")
    page_number: int
    line_number: int | None = None
    note: str | None = None
    timestamp: datetime


class QuoteTransfer(WireModel):
    id: uuid.UUID
    text: str
    page_number: int | None = None
    note: str | None = None
    is_favorite: bool = False
    date_added: datetime


class QuotesTransfer(WireModel):
    """Every quote of one book."""

    kind: Literal["quotes"] = "quotes"
    book_uuid: uuid.UUID = Field(alias="bookUUID")
    quotes: list[QuoteTransfer]


class LibraryBroadcast(WireModel):
    books: list[BookTransfer]
    sent_at: datetime


Envelope = Annotated[
    PageDelta
    | ActiveSessionSnapshot
    | ActiveSessionEnd
    | SessionCompletion
    | SessionDeletion
    | ProfileSettings
    | ProfileStats
    | BookPositionTransfer
    | QuotesTransfer,
    Field(discriminator="kind"),
]

envelope_adapter = TypeAdapter(Envelope)

PROFILE_SETTING_FIELDS = [
    name for name in ProfileSettings.model_fields if name != "kind"
]
