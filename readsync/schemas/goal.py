import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from readsync.models import GoalType


class GoalCreate(BaseModel):
    type: GoalType
    target_value: int = Field(..., ge=1)
    start_date: datetime | None = None  # defaults to now
    end_date: datetime


class GoalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    target_value: int
    current_value: int
    start_date: datetime
    end_date: datetime
    is_completed: bool
    progress_percentage: float
