"""
Domain exception hierarchy.

Services raise these types instead of ``HTTPException`` so they stay usable
outside a request. ``main.py`` registers one handler for ``SchedulerError``
that turns any of them into a structured JSON failure:

    {"detail": "...", "code": "capacity_exceeded", ...details}

Usage:
    from dept_scheduler.exceptions import NotFoundError, ConflictError

    raise NotFoundError("Task", task_id)
    raise ConflictError("Task is full", details={"capacity": 2})
"""

from typing import Any, Dict, Optional


class SchedulerError(Exception):
    """Base class for every error the core reports to its caller."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(SchedulerError):
    """Malformed input: missing field, out-of-range value, bad enum, end before start."""

    status_code = 400
    code = "validation_error"


class NotFoundError(SchedulerError):
    """Referenced entity is absent.

    Args:
        resource: Human-readable entity name (e.g. "Task", "Event").
        resource_id: The key that was looked up.
    """

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: Any = None, message: Optional[str] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource} not found"
        super().__init__(message)


class ForbiddenError(SchedulerError):
    """Role, department or ownership check failed."""

    status_code = 403
    code = "forbidden"


class EditWindowClosed(ForbiddenError):
    """A manager tried to edit or delete a task after it started."""

    code = "edit_window_closed"


class ConflictError(SchedulerError):
    """Business-rule collision: room double-booking, business trip, capacity, weight budget."""

    status_code = 409
    code = "conflict"


class CapacityExceeded(ConflictError):
    code = "capacity_exceeded"

    def __init__(self, capacity: int) -> None:
        super().__init__("Task is full", details={"capacity": capacity})


class AlreadyAssigned(ConflictError):
    code = "already_assigned"

    def __init__(self, task_id: int, user_id: int) -> None:
        super().__init__(
            "Already applied or assigned",
            details={"task_id": task_id, "user_id": user_id},
        )


class StateError(SchedulerError):
    """Transition not valid for the current status."""

    status_code = 400
    code = "invalid_state"
