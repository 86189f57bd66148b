from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ScheduleAssignment(BaseModel):
    user_id: int
    progress: int
    status: str


class ScheduleTask(BaseModel):
    id: int
    title: str
    type: str = "task"
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str
    priority: str
    project_id: Optional[int] = None
    department_id: Optional[int] = None
    assignments: List[ScheduleAssignment] = []


class ScheduleEvent(BaseModel):
    id: int
    title: str
    type: str = "event"
    start_time: datetime
    end_time: datetime
    status: str
    is_global: bool
    department_id: Optional[int] = None
    participant_ids: List[int] = []


class ScheduleOut(BaseModel):
    tasks: List[ScheduleTask]
    events: List[ScheduleEvent]
