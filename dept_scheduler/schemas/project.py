from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from dept_scheduler.utils.dates import UtcDateTime


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None
    # Optional calendar event covering the project timeframe
    create_event: bool = False
    event_start: Optional[UtcDateTime] = None
    event_end: Optional[UtcDateTime] = None
    room_id: Optional[int] = None

    @model_validator(mode="after")
    def event_window_must_be_ordered(self):
        if self.create_event and self.event_start and self.event_end and self.event_end <= self.event_start:
            raise ValueError('Event end must be after event start')
        return self


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    department_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProjectProgressOut(ProjectOut):
    progress: int
    tasks_effective_weights: Dict[int, int] = {}
