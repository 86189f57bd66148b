# dept_scheduler/services/department_service.py
"""Departments: readable by everyone, written by admins only."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from dept_scheduler.exceptions import ConflictError, NotFoundError
from dept_scheduler.models import Department, Event, Project, Task, User
from dept_scheduler.schemas.user import DepartmentCreate, DepartmentUpdate
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.utils.permissions import Principal, require_admin

logger = logging.getLogger(__name__)


class DepartmentService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def get_department(self, department_id: int) -> Department:
        department = self.db.query(Department).filter(Department.id == department_id).first()
        if not department:
            raise NotFoundError("Department", department_id)
        return department

    def list_departments(self) -> List[Department]:
        return self.db.query(Department).order_by(Department.name, Department.id).all()

    def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(Department.id).filter(Department.name == name)
        if exclude_id is not None:
            query = query.filter(Department.id != exclude_id)
        if query.first():
            raise ConflictError("Department name already exists", details={"name": name})

    def create_department(self, payload: DepartmentCreate, principal: Principal) -> Department:
        require_admin(principal)
        self._ensure_name_free(payload.name)
        department = Department(name=payload.name, description=payload.description)
        self.db.add(department)
        self.db.commit()
        self.db.refresh(department)

        logger.info(f"Department {department.id} created by admin {principal.user_id}")
        self.broadcaster.emit("departments", "create", department.id)
        return department

    def update_department(self, department_id: int, payload: DepartmentUpdate, principal: Principal) -> Department:
        require_admin(principal)
        department = self.get_department(department_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("name"):
            self._ensure_name_free(data["name"], exclude_id=department.id)
            department.name = data["name"]
        if "description" in data:
            department.description = data["description"]
        self.db.commit()
        self.db.refresh(department)
        self.broadcaster.emit("departments", "update", department.id)
        return department

    def delete_department(self, department_id: int, principal: Principal) -> None:
        """Remove an empty department; one still referenced by users, tasks, events or projects is kept"""
        require_admin(principal)
        department = self.get_department(department_id)
        for model, what in ((User, "users"), (Task, "tasks"), (Event, "events"), (Project, "projects")):
            if self.db.query(model.id).filter(model.department_id == department.id).first():
                raise ConflictError(f"Department still has {what}", details={"department_id": department.id})

        self.db.delete(department)
        self.db.commit()
        logger.info(f"Department {department_id} deleted by admin {principal.user_id}")
        self.broadcaster.emit("departments", "delete", department_id)
