# dept_scheduler/services/schedule_service.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from dept_scheduler.models import Event, Participant, Task, TaskAssignment
from dept_scheduler.utils.dates import to_naive_utc
from dept_scheduler.utils.permissions import Principal

MAX_UPCOMING = 200


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


class ScheduleService:
    def __init__(self, db: Session):
        self.db = db

    def upcoming(
        self,
        principal: Principal,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        limit: int = 100,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Tasks and events in a window, scoped by role.

        Employees get their assigned tasks and the events they take part in or
        created; managers their department's tasks plus department, global and
        participated events; admins everything.
        """
        limit = min(limit or 100, MAX_UPCOMING)
        start_from, start_to = to_naive_utc(start_from), to_naive_utc(start_to)

        task_query = self.db.query(Task).options(selectinload(Task.assignments))
        event_query = self.db.query(Event).options(selectinload(Event.participants))
        if start_from:
            task_query = task_query.filter(Task.start_time >= start_from)
            event_query = event_query.filter(Event.start_time >= start_from)
        if start_to:
            task_query = task_query.filter(Task.start_time <= start_to)
            event_query = event_query.filter(Event.start_time <= start_to)

        participated = select(Participant.event_id).where(Participant.user_id == principal.user_id)
        if principal.is_employee:
            mine = select(TaskAssignment.task_id).where(TaskAssignment.user_id == principal.user_id)
            task_query = task_query.filter(Task.id.in_(mine))
            event_query = event_query.filter(or_(
                Event.id.in_(participated),
                Event.created_by == principal.user_id,
            ))
        elif principal.is_manager:
            task_query = task_query.filter(Task.department_id == principal.department_id)
            event_query = event_query.filter(or_(
                Event.department_id == principal.department_id,
                Event.is_global.is_(True),
                Event.id.in_(participated),
            ))

        tasks = task_query.order_by(Task.start_time, Task.id).limit(limit).all()
        events = event_query.order_by(Event.start_time, Event.id).limit(limit).all()

        return {
            "tasks": [
                {
                    "id": t.id,
                    "title": t.title,
                    "type": "task",
                    "start_time": t.start_time,
                    "end_time": t.end_time,
                    "status": _value(t.status),
                    "priority": _value(t.priority),
                    "project_id": t.project_id,
                    "department_id": t.department_id,
                    "assignments": [
                        {"user_id": a.user_id, "progress": a.progress, "status": _value(a.status)}
                        for a in t.assignments
                    ],
                }
                for t in tasks
            ],
            "events": [
                {
                    "id": e.id,
                    "title": e.title,
                    "type": "event",
                    "start_time": e.start_time,
                    "end_time": e.end_time,
                    "status": _value(e.status),
                    "is_global": e.is_global,
                    "department_id": e.department_id,
                    "participant_ids": [p.user_id for p in e.participants],
                }
                for e in events
            ],
        }
