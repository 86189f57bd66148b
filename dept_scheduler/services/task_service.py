# dept_scheduler/services/task_service.py
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from dept_scheduler.config.settings import Settings
from dept_scheduler.exceptions import ForbiddenError, NotFoundError, ValidationError
from dept_scheduler.models import Label, Project, Task, TaskAssignment, TaskComment, TaskStatus
from dept_scheduler.schemas.task import TaskCreate, TaskUpdate
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.services.weights import check_weight_budget, effective_weights, normalize_weight
from dept_scheduler.utils.dates import to_naive_utc
from dept_scheduler.utils.permissions import Principal, require_task_editor

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None, notifier: Optional[NotificationService] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()
        self.notifier = notifier or NotificationService(db, self.broadcaster)

    def get_task(self, task_id: int) -> Task:
        task = self.db.query(Task).filter(Task.id == task_id).first()
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    def sibling_weights(self, project_id: Optional[int], exclude_task_id: Optional[int] = None) -> List[Optional[int]]:
        if not project_id:
            return []
        query = self.db.query(Task.weight).filter(Task.project_id == project_id)
        if exclude_task_id is not None:
            query = query.filter(Task.id != exclude_task_id)
        return [row.weight for row in query.all()]

    def _load_labels(self, label_ids: List[int]) -> List[Label]:
        if not label_ids:
            return []
        wanted = list(dict.fromkeys(label_ids))
        labels = self.db.query(Label).filter(Label.id.in_(wanted)).all()
        if len(labels) != len(wanted):
            found = {label.id for label in labels}
            raise NotFoundError("Label", [i for i in wanted if i not in found], "One or more labels not found")
        return labels

    def _ensure_project(self, project_id: Optional[int]) -> None:
        if project_id and not self.db.query(Project.id).filter(Project.id == project_id).first():
            raise NotFoundError("Project", project_id)

    # ----- reads ---------------------------------------------------------

    def list_tasks(
        self,
        principal: Principal,
        status: Optional[TaskStatus] = None,
        project_id: Optional[int] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        scope: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Task]:
        """Tasks visible to ``principal``, each with ``effective_weight`` attached.

        Managers see their own department and employees the tasks they are
        assigned to, unless ``scope="all"`` is requested.
        """
        start_from, start_to = to_naive_utc(start_from), to_naive_utc(start_to)
        query = self.db.query(Task).options(
            selectinload(Task.labels),
            selectinload(Task.assignments),
        )
        if status:
            query = query.filter(Task.status == status)
        if project_id:
            query = query.filter(Task.project_id == project_id)
        if start_from:
            query = query.filter(Task.start_time >= start_from)
        if start_to:
            query = query.filter(Task.start_time <= start_to)

        if scope != "all":
            if principal.is_manager:
                query = query.filter(Task.department_id == principal.department_id)
            elif principal.is_employee:
                query = query.join(TaskAssignment, TaskAssignment.task_id == Task.id).filter(
                    TaskAssignment.user_id == principal.user_id
                )

        limit = Settings.clamp_limit(limit, Settings.TASKS)
        tasks = query.order_by(Task.created_at.desc(), Task.id.desc()).offset(max(offset, 0)).limit(limit).all()
        self.attach_effective_weights(tasks)
        return tasks

    def attach_effective_weights(self, tasks: List[Task]) -> None:
        """Set ``effective_weight`` on each task, computed over all of its project siblings"""
        project_ids = {t.project_id for t in tasks if t.project_id}
        weight_maps: Dict[int, Dict[int, int]] = {}
        for pid in project_ids:
            siblings = self.db.query(Task.id, Task.weight).filter(Task.project_id == pid).order_by(Task.id).all()
            weight_maps[pid] = effective_weights([{"id": s.id, "weight": s.weight} for s in siblings])

        loose = [t for t in tasks if not t.project_id]
        loose_map = effective_weights(loose)
        for t in tasks:
            if t.project_id:
                t.effective_weight = weight_maps[t.project_id].get(t.id)
            else:
                t.effective_weight = loose_map.get(t.id)

    def stats(self, principal: Principal, scope: Optional[str] = None) -> Dict[str, int]:
        """Task count per status for the principal's default or requested scope"""
        if not scope:
            scope = "all" if principal.is_admin else "department" if principal.is_manager else "me"

        query = self.db.query(Task.status, func.count(Task.id))
        if scope == "department" and principal.department_id:
            query = query.filter(Task.department_id == principal.department_id)
        elif scope == "me":
            mine = select(TaskAssignment.task_id).where(TaskAssignment.user_id == principal.user_id)
            query = query.filter(Task.id.in_(mine))

        counts = {s.value: 0 for s in TaskStatus}
        for status, count in query.group_by(Task.status).all():
            counts[TaskStatus(status).value] = count
        return counts

    # ----- writes --------------------------------------------------------

    def create_task(self, payload: TaskCreate, principal: Principal) -> Task:
        if principal.is_manager and payload.department_id and payload.department_id != principal.department_id:
            raise ForbiddenError("Cannot create task for another department")
        if payload.capacity < 1:
            raise ValidationError("Capacity must be at least 1", details={"capacity": payload.capacity})

        weight = normalize_weight(payload.weight)
        self._ensure_project(payload.project_id)
        if payload.project_id:
            check_weight_budget(self.sibling_weights(payload.project_id), weight)
        labels = self._load_labels(payload.label_ids)

        task = Task(
            title=payload.title,
            description=payload.description,
            start_time=payload.start_time,
            end_time=payload.end_time,
            status=payload.status,
            priority=payload.priority,
            assignment_type=payload.assignment_type,
            capacity=payload.capacity,
            weight=weight,
            project_id=payload.project_id,
            department_id=payload.department_id or principal.department_id,
            created_by=principal.user_id,
        )
        task.labels = labels
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)

        logger.info(f"Task {task.id} created by user {principal.user_id}")
        self.broadcaster.emit("tasks", "create", task.id)
        return task

    def update_task(self, task_id: int, payload: TaskUpdate, principal: Principal, now: Optional[datetime] = None) -> Task:
        task = self.get_task(task_id)
        require_task_editor(principal, task, now, action="edit")

        data = payload.model_dump(exclude_unset=True)
        label_ids = data.pop("label_ids", None)

        if "capacity" in data and (data["capacity"] is None or data["capacity"] < 1):
            raise ValidationError("Capacity must be at least 1", details={"capacity": data["capacity"]})
        if "weight" in data:
            data["weight"] = normalize_weight(data["weight"])
        if "project_id" in data:
            self._ensure_project(data["project_id"])

        # Required columns keep their value when the client sends null
        for key in ("title", "status", "priority", "assignment_type"):
            if key in data and data[key] is None:
                data.pop(key)

        start_time = data.get("start_time", task.start_time)
        end_time = data.get("end_time", task.end_time)
        if start_time and end_time and end_time <= start_time:
            raise ValidationError("End time must be after start time")

        project_id = data.get("project_id", task.project_id)
        weight = data.get("weight", task.weight)
        if project_id:
            check_weight_budget(self.sibling_weights(project_id, exclude_task_id=task.id), weight)

        labels = self._load_labels(label_ids) if label_ids is not None else None

        for key, value in data.items():
            setattr(task, key, value)
        if labels is not None:
            task.labels = labels
        self.db.commit()
        self.db.refresh(task)

        logger.info(f"Task {task.id} updated by user {principal.user_id}: {sorted(data)}")
        self.broadcaster.emit("tasks", "update", task.id)
        self.notifier.notify(
            [a.user_id for a in task.assignments],
            "Task updated",
            f"Task {task.title} has been updated",
            ref_type="task",
            ref_id=task.id,
        )
        return task

    def delete_task(self, task_id: int, principal: Principal, now: Optional[datetime] = None) -> None:
        task = self.get_task(task_id)
        require_task_editor(principal, task, now, action="delete")

        assigned_ids = [a.user_id for a in task.assignments]
        title = task.title
        self.db.delete(task)
        self.db.commit()

        logger.info(f"Task {task_id} deleted by user {principal.user_id}")
        self.broadcaster.emit("tasks", "delete", task_id)
        self.notifier.notify(
            assigned_ids,
            "Task deleted",
            f"Task {title} has been deleted",
            ref_type="task",
            ref_id=task_id,
        )

    # ----- comments ------------------------------------------------------

    def list_comments(self, task_id: int) -> List[TaskComment]:
        self.get_task(task_id)
        return self.db.query(TaskComment).filter(
            TaskComment.task_id == task_id
        ).order_by(TaskComment.created_at, TaskComment.id).all()

    def add_comment(self, task_id: int, principal: Principal, content: Optional[str]) -> TaskComment:
        self.get_task(task_id)
        text = (content or "").strip()
        if not text:
            raise ValidationError("Missing content")

        comment = TaskComment(
            task_id=task_id,
            user_id=principal.user_id,
            content=text[:Settings.TASKS["comment_max_length"]],
        )
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        self.broadcaster.emit("task_comments", "create", comment.id, task_id=task_id)
        return comment
