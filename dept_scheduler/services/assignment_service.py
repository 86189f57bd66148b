# dept_scheduler/services/assignment_service.py
"""
Task assignment lifecycle.

    apply (open tasks) ──────────────► accepted ──► completed (progress 100)
    assign ──► assigned ──accept──►  accepted
                 │                      │
                 └──────reject──────► rejected ──approve──► (row deleted)
                                        └───────deny─────► assigned / accepted

Only ``accepted`` and ``completed`` rows take a capacity slot. Every
mutation ends with a task status refresh, a best-effort notification and a
``tasks`` change event.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dept_scheduler.config.settings import Settings
from dept_scheduler.exceptions import (
    AlreadyAssigned,
    CapacityExceeded,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StateError,
    ValidationError,
)
from dept_scheduler.models import (
    AssignmentStatus,
    AssignmentType,
    CAPACITY_STATUSES,
    Task,
    TaskAssignment,
    User,
)
from dept_scheduler.services.business_trip import BusinessTripValidator
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.status import refresh_task_status
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.services.weights import round_half_up
from dept_scheduler.utils.permissions import Principal, can_manage, task_start_bound

logger = logging.getLogger(__name__)


def restored_status(task: Task) -> AssignmentStatus:
    """Status an assignment gets when placed or restored on ``task``"""
    if task.assignment_type == AssignmentType.DIRECT:
        return AssignmentStatus.ASSIGNED
    return AssignmentStatus.ACCEPTED


class TaskAssignmentService:
    def __init__(
        self,
        db: Session,
        broadcaster: Optional[Broadcaster] = None,
        notifier: Optional[NotificationService] = None,
        trip_validator: Optional[BusinessTripValidator] = None,
    ):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()
        self.notifier = notifier or NotificationService(db, self.broadcaster)
        self.trip_validator = trip_validator or BusinessTripValidator(db)

    # ----- lookups -------------------------------------------------------

    def get_task(self, task_id: int, lock: bool = False) -> Task:
        query = self.db.query(Task).filter(Task.id == task_id)
        if lock:
            # Serializes concurrent capacity checks on backends with row locks
            query = query.with_for_update()
        task = query.first()
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    def get_assignment(self, task_id: int, user_id: int) -> TaskAssignment:
        assignment = self.db.query(TaskAssignment).filter(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id
        ).first()
        if not assignment:
            raise NotFoundError("Assignment", (task_id, user_id), "Assignment not found")
        return assignment

    def accepted_count(self, task_id: int) -> int:
        return self.db.query(TaskAssignment).filter(
            TaskAssignment.task_id == task_id,
            TaskAssignment.status.in_(CAPACITY_STATUSES)
        ).count()

    # ----- guards --------------------------------------------------------

    def _ensure_capacity(self, task: Task) -> None:
        if self.accepted_count(task.id) >= task.capacity:
            raise CapacityExceeded(task.capacity)

    def _ensure_not_assigned(self, task_id: int, user_id: int) -> None:
        exists = self.db.query(TaskAssignment.id).filter(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id
        ).first()
        if exists:
            raise AlreadyAssigned(task_id, user_id)

    def _ensure_manager(self, principal: Principal, task: Task) -> None:
        if not can_manage(principal, task):
            if principal.is_manager:
                raise ForbiddenError("Cross-department not allowed")
            raise ForbiddenError("Forbidden")

    def _insert(self, task: Task, user_id: int, status: AssignmentStatus) -> TaskAssignment:
        assignment = TaskAssignment(task_id=task.id, user_id=user_id, status=status, progress=0)
        self.db.add(assignment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyAssigned(task.id, user_id)
        self.db.refresh(assignment)
        return assignment

    def _after_change(self, task_id: int, action: str) -> None:
        refresh_task_status(self.db, task_id, self.broadcaster)
        self.broadcaster.emit("tasks", action, task_id)

    # ----- transitions ---------------------------------------------------

    def apply(self, task_id: int, principal: Principal) -> TaskAssignment:
        """Self-apply to an open task; the assignment starts out accepted"""
        task = self.get_task(task_id, lock=True)
        if task.assignment_type != AssignmentType.OPEN:
            raise StateError("Task is not open for self-apply")
        self._ensure_capacity(task)
        self._ensure_not_assigned(task.id, principal.user_id)

        assignment = self._insert(task, principal.user_id, AssignmentStatus.ACCEPTED)
        logger.info(f"User {principal.user_id} applied to task {task.id}")
        self._after_change(task.id, "assign")
        return assignment

    def assign(self, task_id: int, user_id: Optional[int], principal: Principal) -> TaskAssignment:
        """Manager/admin places a user on a task"""
        if not (principal.is_admin or principal.is_manager):
            raise ForbiddenError("Forbidden")
        task = self.get_task(task_id)
        self._ensure_manager(principal, task)
        if not user_id:
            raise ValidationError("Missing user_id")
        if not self.db.query(User.id).filter(User.id == user_id).first():
            raise NotFoundError("User", user_id)

        check_start = task.start_time or task.end_time
        check_end = task.end_time or task.start_time
        if check_start:
            conflict = self.trip_validator.check_conflict(user_id, check_start, check_end)
            if conflict.has_conflict:
                raise ConflictError(conflict.message, details={"conflict": _serialize(conflict.details)})

        task = self.get_task(task_id, lock=True)
        self._ensure_capacity(task)
        self._ensure_not_assigned(task.id, user_id)

        assignment = self._insert(task, user_id, restored_status(task))
        logger.info(f"User {user_id} assigned to task {task.id} by {principal.user_id}")
        self._after_change(task.id, "assign")
        self.notifier.notify(user_id, "New task", task.title, ref_type="task", ref_id=task.id)
        return assignment

    def unassign(self, task_id: int, user_id: Optional[int], principal: Principal, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Manager/admin removes a user from a task.

        Reports whether the task had already started, in which case the
        assignee became inactive at ``now``.
        """
        task = self.get_task(task_id)
        self._ensure_manager(principal, task)
        if not user_id:
            raise ValidationError("Missing user_id")
        assignment = self.get_assignment(task.id, user_id)

        now = now or datetime.utcnow()
        bound = task_start_bound(task)
        task_started = bool(bound and now >= bound)

        self.db.delete(assignment)
        self.db.commit()
        logger.info(f"User {user_id} unassigned from task {task.id} by {principal.user_id}")
        self._after_change(task.id, "unassign")
        self.notifier.notify(
            user_id,
            "Removed from task",
            f"You have been removed from task: {task.title}",
            ref_type="task",
            ref_id=task.id,
        )
        return {
            "message": "Unassigned",
            "task_started": task_started,
            "inactive_at": now if task_started else None,
        }

    def accept(self, task_id: int, principal: Principal) -> TaskAssignment:
        """Assignee accepts a directly assigned task.

        Capacity is checked again here because it may have filled up since
        the assignment was made.
        """
        task = self.get_task(task_id, lock=True)
        assignment = self.get_assignment(task.id, principal.user_id)
        if assignment.status in CAPACITY_STATUSES:
            return assignment
        if assignment.status == AssignmentStatus.REJECTED:
            raise StateError("Rejection is awaiting a manager decision")
        self._ensure_capacity(task)

        assignment.status = AssignmentStatus.ACCEPTED
        self.db.commit()
        self.db.refresh(assignment)
        self._after_change(task.id, "accept")

        who = self.notifier.display_name(principal.user_id)
        self.notifier.notify(
            self.notifier.managers_or_creator(task.department_id, task.created_by),
            "Task accepted",
            f"{who} accepted: {task.title}",
            ref_type="task",
            ref_id=task.id,
        )
        return assignment

    def reject(self, task_id: int, principal: Principal, reason: Optional[str] = None) -> TaskAssignment:
        """Assignee asks to be released from a task; a manager decides later"""
        task = self.get_task(task_id)
        assignment = self.get_assignment(task.id, principal.user_id)
        if assignment.status == AssignmentStatus.COMPLETED:
            raise StateError("Already completed")

        assignment.status = AssignmentStatus.REJECTED
        if reason:
            assignment.reject_reason = str(reason)[:Settings.TASKS["reject_reason_max_length"]]
        self.db.commit()
        self.db.refresh(assignment)
        self._after_change(task.id, "reject")

        who = self.notifier.display_name(principal.user_id)
        message = f"{who} rejected: {task.title}"
        if reason:
            message += f" - Reason: {reason}"
        self.notifier.notify(
            self.notifier.managers_or_creator(task.department_id, task.created_by),
            "Task rejected",
            message,
            ref_type="task",
            ref_id=task.id,
        )
        return assignment

    def _rejected_assignments(self, task: Task, user_id: Optional[int]) -> List[TaskAssignment]:
        query = self.db.query(TaskAssignment).filter(
            TaskAssignment.task_id == task.id,
            TaskAssignment.status == AssignmentStatus.REJECTED
        )
        if user_id:
            query = query.filter(TaskAssignment.user_id == user_id)
        assignments = query.all()
        if not assignments:
            raise NotFoundError("Assignment", task.id, "No rejected assignments")
        return assignments

    def approve_rejection(self, task_id: int, principal: Principal, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Accept the rejection: the assignment rows are removed"""
        task = self.get_task(task_id)
        self._ensure_manager(principal, task)
        assignments = self._rejected_assignments(task, user_id)
        affected = [a.user_id for a in assignments]

        for a in assignments:
            self.db.delete(a)
        self.db.commit()
        self._after_change(task.id, "approve-reject")

        self.notifier.notify(
            affected,
            "Rejection approved",
            f"Your manager approved your rejection of task: {task.title}",
            ref_type="task",
            ref_id=task.id,
        )
        return {"message": "Approved", "count": len(affected)}

    def deny_rejection(self, task_id: int, principal: Principal, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Refuse the rejection: the assignment goes back to work"""
        task = self.get_task(task_id, lock=True)
        self._ensure_manager(principal, task)
        assignments = self._rejected_assignments(task, user_id)

        new_status = restored_status(task)
        # Rejected rows gave up their slot; restoring them to accepted takes it back
        if new_status in CAPACITY_STATUSES and self.accepted_count(task.id) + len(assignments) > task.capacity:
            raise CapacityExceeded(task.capacity)
        for a in assignments:
            a.status = new_status
        self.db.commit()
        self._after_change(task.id, "deny-reject")

        self.notifier.notify(
            [a.user_id for a in assignments],
            "Rejection denied",
            f"Your manager did not approve the rejection. Please continue task: {task.title}",
            ref_type="task",
            ref_id=task.id,
        )
        return {"message": "Denied", "count": len(assignments)}

    def update_progress(self, task_id: int, principal: Principal, progress) -> TaskAssignment:
        """Assignee reports progress; 100 completes the assignment"""
        if isinstance(progress, bool) or not isinstance(progress, (int, float)) or progress < 0 or progress > 100:
            raise ValidationError("Invalid progress", details={"progress": progress})

        value = round_half_up(progress)
        completes = value >= 100
        task = self.get_task(task_id, lock=completes)
        assignment = self.get_assignment(task.id, principal.user_id)
        if assignment.status == AssignmentStatus.REJECTED:
            raise StateError("Rejection is awaiting a manager decision")
        # A not yet accepted assignment takes a slot when it completes
        if completes and assignment.status not in CAPACITY_STATUSES:
            self._ensure_capacity(task)

        assignment.progress = value
        if completes:
            assignment.status = AssignmentStatus.COMPLETED
        self.db.commit()
        self.db.refresh(assignment)
        self._after_change(task.id, "progress")

        if assignment.status == AssignmentStatus.COMPLETED:
            who = self.notifier.display_name(principal.user_id)
            self.notifier.notify(
                self.notifier.managers_or_creator(task.department_id, task.created_by),
                "Task completed",
                f"{who} completed: {task.title}",
                ref_type="task",
                ref_id=task.id,
            )
        return assignment


def _serialize(details: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not details:
        return details
    return {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in details.items()}
