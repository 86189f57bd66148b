from .task import (
    TaskCreate, TaskUpdate, TaskOut, TaskStats, AssignmentOut, AssignRequest, RejectRequest,
    RejectionDecision, ProgressUpdate, UnassignResult, DecisionResult, CommentCreate, CommentOut,
    LabelCreate, LabelUpdate, LabelOut,
)
from .event import (
    EventCreate, EventUpdate, EventOut, ParticipantOut, ParticipantsAdd, ParticipantRSVP,
    AdjustmentRequest, RoomCreate, RoomUpdate, RoomOut, ConflictCheckOut,
)
from .project import ProjectCreate, ProjectUpdate, ProjectOut, ProjectProgressOut
from .user import UserBasic, UserCreate, UserUpdate, DepartmentCreate, DepartmentUpdate, DepartmentOut
from .report import MonthCount, DepartmentCount, DepartmentSummary
from .notification import NotificationOut, NotificationMarkAllRead
from .schedule import ScheduleOut
