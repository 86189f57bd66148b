# dept_scheduler/schemas/task.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dept_scheduler.models.task import TaskStatus, TaskPriority, AssignmentType, AssignmentStatus
from dept_scheduler.utils.dates import UtcDateTime


class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_time: Optional[UtcDateTime] = None
    end_time: Optional[UtcDateTime] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.NORMAL
    assignment_type: AssignmentType = AssignmentType.OPEN
    capacity: int = 1
    weight: Optional[float] = None
    project_id: Optional[int] = None
    department_id: Optional[int] = None

    @model_validator(mode="after")
    def end_time_must_be_after_start_time(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError('End time must be after start time')
        return self


class TaskCreate(TaskBase):
    label_ids: List[int] = []


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_time: Optional[UtcDateTime] = None
    end_time: Optional[UtcDateTime] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignment_type: Optional[AssignmentType] = None
    capacity: Optional[int] = None
    weight: Optional[float] = None  # explicit null switches the task back to auto weight
    project_id: Optional[int] = None
    label_ids: Optional[List[int]] = None


class LabelBasic(BaseModel):
    id: int
    name: str
    color: str

    model_config = {"from_attributes": True}


class AssignmentOut(BaseModel):
    id: int
    task_id: int
    user_id: int
    status: AssignmentStatus
    progress: int
    reject_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TaskOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: TaskStatus
    priority: TaskPriority
    assignment_type: AssignmentType
    capacity: int
    weight: Optional[int] = None
    effective_weight: Optional[int] = None
    project_id: Optional[int] = None
    department_id: Optional[int] = None
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    labels: List[LabelBasic] = []
    assignments: List[AssignmentOut] = []

    model_config = {"from_attributes": True}


class TaskStats(BaseModel):
    todo: int = 0
    in_progress: int = 0
    completed: int = 0


class AssignRequest(BaseModel):
    user_id: int


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RejectionDecision(BaseModel):
    user_id: Optional[int] = None


class ProgressUpdate(BaseModel):
    progress: float


class UnassignResult(BaseModel):
    message: str
    task_started: bool
    inactive_at: Optional[datetime] = None


class DecisionResult(BaseModel):
    message: str
    count: int


class CommentCreate(BaseModel):
    content: str

    @field_validator('content')
    def content_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Missing content')
        return v


class CommentOut(BaseModel):
    id: int
    task_id: int
    user_id: int
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = None


class LabelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None


class LabelOut(LabelBasic):
    created_at: datetime


class WeightMap(BaseModel):
    weights: Dict[int, int]
