# dept_scheduler/services/status.py
"""
Status derivation for tasks and the event status lattice.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from dept_scheduler.exceptions import StateError
from dept_scheduler.models import Task, TaskAssignment, TaskStatus, AssignmentStatus, EventStatus
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster

logger = logging.getLogger(__name__)


def derive_task_status(assignments: Sequence[TaskAssignment]) -> Optional[TaskStatus]:
    """Status implied by a task's assignments, or None when there are none"""
    total = len(assignments)
    if total == 0:
        return None

    completed_count = sum(
        1 for a in assignments
        if a.status == AssignmentStatus.COMPLETED or (a.progress or 0) >= 100
    )
    any_progress = any((a.progress or 0) > 0 for a in assignments)

    if completed_count == total:
        return TaskStatus.COMPLETED
    if any_progress:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.TODO


def refresh_task_status(db: Session, task_id: int, broadcaster: Optional[Broadcaster] = None) -> Optional[TaskStatus]:
    """Recompute and persist a task's status after an assignment mutation.

    Writes (and emits a change event) only when the status changes.
    Returns the new status if it changed.
    """
    broadcaster = broadcaster or NullBroadcaster()
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        return None

    assignments = db.query(TaskAssignment).filter(TaskAssignment.task_id == task_id).all()
    new_status = derive_task_status(assignments)
    if new_status is None or task.status == new_status:
        return None

    task.status = new_status
    db.commit()
    logger.info(f"Task {task_id} status auto-updated to {new_status.value}")
    broadcaster.emit("tasks", "status", task_id, status=new_status.value)
    return new_status


# pending -> approved/rejected, approved -> completed
EVENT_TRANSITIONS = {
    EventStatus.PENDING: {EventStatus.APPROVED, EventStatus.REJECTED},
    EventStatus.APPROVED: {EventStatus.COMPLETED},
    EventStatus.REJECTED: set(),
    EventStatus.COMPLETED: set(),
}


def can_transition_event(current: EventStatus, target: EventStatus) -> bool:
    return target in EVENT_TRANSITIONS.get(current, set())


def check_event_transition(current: EventStatus, target: EventStatus, is_admin: bool = False) -> None:
    """Admins may set any status; everyone else follows the lattice."""
    if is_admin or current == target:
        return
    if not can_transition_event(current, target):
        raise StateError(
            f"Cannot change event status from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )
