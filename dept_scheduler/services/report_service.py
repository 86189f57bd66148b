# dept_scheduler/services/report_service.py
"""
Read-only aggregates over events and tasks.

Events are counted by start month and by their own department. Date
bounds apply to the event start: ``start_from`` is inclusive and
``start_to`` exclusive.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from dept_scheduler.exceptions import ForbiddenError, ValidationError
from dept_scheduler.models import Department, Event, EventStatus, EventType, Task, TaskStatus
from dept_scheduler.utils.dates import to_naive_utc
from dept_scheduler.utils.permissions import Principal


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def _filter_events(
        self,
        query,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        status: Optional[EventStatus] = None,
        event_type: Optional[EventType] = None,
    ):
        start_from, start_to = to_naive_utc(start_from), to_naive_utc(start_to)
        if start_from:
            query = query.filter(Event.start_time >= start_from)
        if start_to:
            query = query.filter(Event.start_time < start_to)
        if status:
            query = query.filter(Event.status == status)
        if event_type:
            query = query.filter(Event.type == event_type)
        return query

    def events_by_month(
        self,
        year: Optional[int] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        status: Optional[EventStatus] = None,
        event_type: Optional[EventType] = None,
        department_id: Optional[int] = None,
    ) -> List[Dict[str, int]]:
        """Event count per calendar month (1-12), months without events omitted.

        ``year`` narrows to that calendar year; explicit bounds win over it.
        """
        if year is not None:
            start_from = start_from or datetime(year, 1, 1)
            start_to = start_to or datetime(year + 1, 1, 1)

        month = extract("month", Event.start_time)
        query = self.db.query(month.label("month"), func.count(Event.id))
        query = self._filter_events(query, start_from, start_to, status, event_type)
        if department_id:
            query = query.filter(Event.department_id == department_id)

        rows = query.group_by(month).order_by(month).all()
        return [{"month": int(m), "count": count} for m, count in rows]

    def events_by_department(
        self,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        status: Optional[EventStatus] = None,
        event_type: Optional[EventType] = None,
    ) -> List[Dict]:
        """Event count per owning department; global events without one come last"""
        query = (
            self.db.query(Event.department_id, Department.name, func.count(Event.id))
            .outerjoin(Department, Department.id == Event.department_id)
        )
        query = self._filter_events(query, start_from, start_to, status, event_type)
        rows = query.group_by(Event.department_id, Department.name).all()

        result = [{"department_id": dep_id, "department": name, "count": count} for dep_id, name, count in rows]
        result.sort(key=lambda r: (r["department"] is None, r["department"] or ""))
        return result

    def department_summary(self, principal: Principal, department_id: Optional[int] = None) -> Dict:
        """Task and event counts per status for one department.

        Managers get their own department; admins name the department.
        """
        if principal.is_manager:
            if department_id and department_id != principal.department_id:
                raise ForbiddenError("Cross-department not allowed")
            department_id = principal.department_id
        elif not principal.is_admin:
            raise ForbiddenError("Forbidden")
        if not department_id:
            raise ValidationError("Missing department_id")

        tasks = {s.value: 0 for s in TaskStatus}
        rows = (
            self.db.query(Task.status, func.count(Task.id))
            .filter(Task.department_id == department_id)
            .group_by(Task.status)
            .all()
        )
        for status, count in rows:
            tasks[TaskStatus(status).value] = count

        events = {s.value: 0 for s in EventStatus}
        rows = (
            self.db.query(Event.status, func.count(Event.id))
            .filter(Event.department_id == department_id)
            .group_by(Event.status)
            .all()
        )
        for status, count in rows:
            events[EventStatus(status).value] = count

        return {"department_id": department_id, "tasks": tasks, "events": events}
