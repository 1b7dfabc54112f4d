from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_xp: int
    current_level: int
    xp_for_next_level: int
    xp_progress_in_level: int
    current_streak: int
    longest_streak: int
    last_reading_date: datetime | None
    last_pardon_date: datetime | None
    streaks_paused: bool
    page_increment_amount: int
    use_circular_progress_watch: bool
    enable_watch_position_marking: bool
    hide_auto_sessions_phone: bool
    hide_auto_sessions_watch: bool
    show_settings_on_watch: bool
    auto_end_session_enabled: bool
    auto_end_session_hours: int


class SettingsUpdate(BaseModel):
    page_increment_amount: int | None = Field(None, ge=1)
    use_circular_progress_watch: bool | None = None
    enable_watch_position_marking: bool | None = None
    hide_auto_sessions_phone: bool | None = None
    hide_auto_sessions_watch: bool | None = None
    show_settings_on_watch: bool | None = None
    streaks_paused: bool | None = None
    auto_end_session_enabled: bool | None = None
    auto_end_session_hours: int | None = Field(None, ge=1)


class PardonResponse(BaseModel):
    status: str
    missed_day: date | None = None
    deadline: datetime | None = None
    next_available: datetime | None = None


class StreakStatusResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_reading_date: datetime | None
    deadline: datetime | None
    streaks_paused: bool
    pardon: PardonResponse


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    unlocked_at: datetime
