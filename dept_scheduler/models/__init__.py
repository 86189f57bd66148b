from .user import User, Department, UserRole
from .event import Event, Participant, Room, EventStatus, EventType, ParticipantStatus, event_departments
from .project import Project
from .task import (
    Task,
    TaskAssignment,
    Label,
    TaskComment,
    TaskStatus,
    TaskPriority,
    AssignmentType,
    AssignmentStatus,
    CAPACITY_STATUSES,
    task_labels,
)
from .notification import Notification
