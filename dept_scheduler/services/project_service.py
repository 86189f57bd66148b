# dept_scheduler/services/project_service.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from dept_scheduler.exceptions import ForbiddenError, NotFoundError
from dept_scheduler.models import Event, EventStatus, Project, Task
from dept_scheduler.schemas.project import ProjectCreate, ProjectUpdate
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.services.weights import summarize_project
from dept_scheduler.utils.permissions import Principal, can_manage, require_manager_or_admin

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def _query(self):
        return self.db.query(Project).options(
            selectinload(Project.tasks).selectinload(Task.assignments)
        )

    def get_project(self, project_id: int) -> Project:
        project = self._query().filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError("Project", project_id)
        return project

    def with_progress(self, project: Project) -> Dict[str, Any]:
        """Project row plus ``progress`` and ``tasks_effective_weights``"""
        summary = summarize_project(list(project.tasks))
        return {
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "department_id": project.department_id,
            "created_at": project.created_at,
            "updated_at": project.updated_at,
            **summary,
        }

    def list_projects(self, principal: Principal) -> List[Dict[str, Any]]:
        """Managers only see their own department's projects"""
        query = self._query()
        if principal.is_manager:
            query = query.filter(Project.department_id == principal.department_id)
        projects = query.order_by(Project.created_at.desc(), Project.id.desc()).all()
        return [self.with_progress(p) for p in projects]

    def get_progress(self, project_id: int) -> Dict[str, Any]:
        return self.with_progress(self.get_project(project_id))

    def create_project(self, payload: ProjectCreate, principal: Principal) -> Project:
        """Managers create projects in their own department, admins in any.

        With ``create_event`` set and a complete window, an approved calendar
        event spanning the project is created alongside it.
        """
        require_manager_or_admin(principal)
        department_id = principal.department_id if principal.is_manager else payload.department_id

        project = Project(name=payload.name, description=payload.description, department_id=department_id)
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        logger.info(f"Project {project.id} created by user {principal.user_id}")

        if payload.create_event and payload.event_start and payload.event_end:
            self._create_project_event(project, payload, principal)

        self.broadcaster.emit("projects", "create", project.id)
        return project

    def _create_project_event(self, project: Project, payload: ProjectCreate, principal: Principal) -> None:
        # The project is already committed; a failed calendar entry does not undo it
        try:
            event = Event(
                title=f"[Project] {project.name}",
                description=project.description or f"Work schedule for project {project.name}",
                start_time=payload.event_start,
                end_time=payload.event_end,
                room_id=payload.room_id,
                status=EventStatus.APPROVED,
                created_by=principal.user_id,
                department_id=project.department_id,
            )
            self.db.add(event)
            self.db.commit()
            self.broadcaster.emit("events", "create", event.id)
        except Exception:
            logger.exception(f"Error creating calendar event for project {project.id}")
            self.db.rollback()

    def _get_managed(self, project_id: int, principal: Principal) -> Project:
        require_manager_or_admin(principal)
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError("Project", project_id)
        if not can_manage(principal, project):
            raise ForbiddenError("Forbidden")
        return project

    def update_project(self, project_id: int, payload: ProjectUpdate, principal: Principal) -> Project:
        project = self._get_managed(project_id, principal)
        data = payload.model_dump(exclude_unset=True)
        if data.get("name"):
            project.name = data["name"]
        if "description" in data:
            project.description = data["description"]
        self.db.commit()
        self.db.refresh(project)
        self.broadcaster.emit("projects", "update", project.id)
        return project

    def delete_project(self, project_id: int, principal: Principal) -> None:
        project = self._get_managed(project_id, principal)
        self.db.delete(project)
        self.db.commit()
        logger.info(f"Project {project_id} deleted by user {principal.user_id}")
        self.broadcaster.emit("projects", "delete", project_id)
