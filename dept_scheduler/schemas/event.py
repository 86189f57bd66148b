# dept_scheduler/schemas/event.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from dept_scheduler.models.event import EventStatus, EventType, ParticipantStatus
from dept_scheduler.utils.dates import UtcDateTime


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_time: UtcDateTime
    end_time: UtcDateTime
    type: EventType = EventType.WORK
    status: Optional[EventStatus] = None
    room_id: Optional[int] = None
    repeat: Optional[str] = None
    department_id: Optional[int] = None
    department_ids: List[int] = []
    is_global: bool = False
    participant_ids: List[int] = []

    @model_validator(mode="after")
    def end_time_must_be_after_start_time(self):
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time')
        return self


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_time: Optional[UtcDateTime] = None
    end_time: Optional[UtcDateTime] = None
    room_id: Optional[int] = None
    status: Optional[EventStatus] = None


class DepartmentBasic(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class ParticipantOut(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: ParticipantStatus
    adjustment_note: Optional[str] = None

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: EventStatus
    type: EventType
    repeat: Optional[str] = None
    room_id: Optional[int] = None
    created_by: int
    department_id: Optional[int] = None
    is_global: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    participants: List[ParticipantOut] = []
    extra_departments: List[DepartmentBasic] = []

    model_config = {"from_attributes": True}


class ParticipantsAdd(BaseModel):
    event_id: int
    user_ids: List[int]


class ParticipantRSVP(BaseModel):
    status: ParticipantStatus


class AdjustmentRequest(BaseModel):
    note: Optional[str] = None
    reason: Optional[str] = None


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)


class RoomOut(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    capacity: Optional[int] = None

    model_config = {"from_attributes": True}


class ConflictCheckOut(BaseModel):
    has_conflict: bool
    message: Optional[str] = None
    conflict: Optional[dict] = None
