# dept_scheduler/utils/permissions.py
"""
Role and department predicates shared by every service.

Every core operation receives a resolved ``Principal``; these helpers only
compare roles and department ids, they never look at credentials.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from dept_scheduler.exceptions import EditWindowClosed, ForbiddenError
from dept_scheduler.models.user import UserRole


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: UserRole
    department_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(user_id=user.id, role=UserRole(user.role), department_id=user.department_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER

    @property
    def is_employee(self) -> bool:
        return self.role == UserRole.EMPLOYEE


def same_department(principal: Principal, department_id: Optional[int]) -> bool:
    return department_id is not None and principal.department_id == department_id


def is_department_manager(principal: Principal, department_id: Optional[int]) -> bool:
    """Manager whose department matches the resource's department"""
    return principal.is_manager and same_department(principal, department_id)


def can_manage(principal: Principal, resource) -> bool:
    """Admin, or a manager scoped to the resource's department"""
    if principal.is_admin:
        return True
    return is_department_manager(principal, getattr(resource, "department_id", None))


def can_manage_event(principal: Principal, event) -> bool:
    """Like ``can_manage`` but managers may also manage global events"""
    if principal.is_admin:
        return True
    return principal.is_manager and (bool(event.is_global) or same_department(principal, event.department_id))


def is_owner(principal: Principal, resource) -> bool:
    return getattr(resource, "created_by", None) == principal.user_id


def task_start_bound(task) -> Optional[datetime]:
    """Start time, falling back to end time for tasks that only have a deadline"""
    return task.start_time or task.end_time


def can_edit_before_window(principal: Principal, task, now: Optional[datetime] = None) -> bool:
    """Department managers may only touch a task strictly before it starts.

    Other roles are not bound by the window. Tasks without any time bound
    are always inside the window.
    """
    if not is_department_manager(principal, task.department_id):
        return True
    bound = task_start_bound(task)
    if bound is None:
        return True
    now = now or datetime.utcnow()
    return now < bound


def require_admin(principal: Principal, message: str = "Forbidden") -> None:
    if not principal.is_admin:
        raise ForbiddenError(message)


def require_manager_or_admin(principal: Principal, message: str = "Forbidden") -> None:
    if not (principal.is_admin or principal.is_manager):
        raise ForbiddenError(message)


def require_task_editor(principal: Principal, task, now: Optional[datetime] = None, action: str = "edit") -> None:
    """Owner, admin or department manager; managers also inside the edit window"""
    if not (is_owner(principal, task) or can_manage(principal, task)):
        raise ForbiddenError("Forbidden")
    if not can_edit_before_window(principal, task, now):
        raise EditWindowClosed(
            f"Manager cannot {action} task after it has started",
            details={"start_bound": _iso(task_start_bound(task))},
        )


def _iso(value: Union[datetime, None]) -> Optional[str]:
    return value.isoformat() if value else None
