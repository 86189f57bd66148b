# dept_scheduler/services/user_service.py
"""
User directory management.

Admins manage everyone. Managers see and add employees of their own
department. Everybody may read and edit their own profile, but only an
admin changes a role or moves a user to another department.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from dept_scheduler.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from dept_scheduler.models import Department, Event, Participant, Task, TaskComment, User, UserRole
from dept_scheduler.schemas.user import UserCreate, UserUpdate
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.utils.permissions import Principal, require_admin, require_manager_or_admin
from dept_scheduler.utils.security import get_password_hash

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


class UserService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def _load(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def _ensure_department(self, department_id: Optional[int]) -> None:
        if department_id and not self.db.query(Department.id).filter(Department.id == department_id).first():
            raise NotFoundError("Department", department_id)

    def _ensure_email_free(self, email: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(User.id).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError("Email already registered", details={"email": email})

    def list_users(self, principal: Principal, limit: int = 50, offset: int = 0) -> List[User]:
        require_manager_or_admin(principal)
        query = self.db.query(User)
        if principal.is_manager:
            query = query.filter(User.department_id == principal.department_id)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        return query.order_by(User.id).offset(max(offset, 0)).limit(limit).all()

    def get_user(self, user_id: int, principal: Principal) -> User:
        user = self._load(user_id)
        if principal.is_admin or principal.user_id == user.id:
            return user
        if principal.is_manager and user.department_id == principal.department_id:
            return user
        raise ForbiddenError("Forbidden")

    def create_user(self, payload: UserCreate, principal: Principal) -> User:
        require_manager_or_admin(principal)
        department_id = payload.department_id
        if principal.is_manager:
            if payload.role != UserRole.EMPLOYEE:
                raise ForbiddenError("Manager can only create employees")
            if department_id and department_id != principal.department_id:
                raise ForbiddenError("Cannot create user for another department")
            department_id = principal.department_id

        self._ensure_department(department_id)
        self._ensure_email_free(payload.email)

        user = User(
            name=payload.name,
            email=payload.email,
            hashed_password=get_password_hash(payload.password),
            role=payload.role,
            department_id=department_id,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User {user.id} ({user.role.value}) created by user {principal.user_id}")
        self.broadcaster.emit("users", "create", user.id)
        return user

    def update_user(self, user_id: int, payload: UserUpdate, principal: Principal) -> User:
        user = self._load(user_id)
        if not (principal.is_admin or principal.user_id == user.id):
            raise ForbiddenError("Forbidden")

        data = payload.model_dump(exclude_unset=True)
        if "role" in data and not principal.is_admin:
            raise ForbiddenError("Only admin can change role")
        if "department_id" in data and not principal.is_admin:
            raise ForbiddenError("Only admin can change department")

        # Required columns keep their value when the client sends null
        for key in ("name", "email", "password", "role"):
            if key in data and data[key] is None:
                data.pop(key)

        if "email" in data:
            self._ensure_email_free(data["email"], exclude_id=user.id)
        if "department_id" in data:
            self._ensure_department(data["department_id"])

        password = data.pop("password", None)
        if password:
            user.hashed_password = get_password_hash(password)
        for key, value in data.items():
            setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User {user.id} updated by user {principal.user_id}: {sorted(data)}")
        self.broadcaster.emit("users", "update", user.id)
        return user

    def delete_user(self, user_id: int, principal: Principal) -> None:
        """Remove a user with their invitations and comments.

        Someone who still owns tasks or events is kept so the history stays intact.
        """
        require_admin(principal)
        if principal.user_id == user_id:
            raise ValidationError("Cannot delete self")
        user = self._load(user_id)
        for model, what in ((Task, "tasks"), (Event, "events")):
            if self.db.query(model.id).filter(model.created_by == user.id).first():
                raise ConflictError(f"User still owns {what}", details={"user_id": user.id})

        self.db.query(Participant).filter(Participant.user_id == user.id).delete(synchronize_session=False)
        self.db.query(TaskComment).filter(TaskComment.user_id == user.id).delete(synchronize_session=False)
        self.db.delete(user)
        self.db.commit()

        logger.info(f"User {user_id} deleted by admin {principal.user_id}")
        self.broadcaster.emit("users", "delete", user_id)
