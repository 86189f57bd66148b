# dept_scheduler/services/account_service.py
"""
Account lockout bookkeeping and user-level checks.

Token issuance lives in the external identity service, not in this backend.
That service checks the password and then calls ``record_failed_login`` or
``record_successful_login``, so the lockout counter is kept in one place.
No route in this app calls them.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from dept_scheduler.config.settings import Settings
from dept_scheduler.exceptions import ForbiddenError, NotFoundError, ValidationError
from dept_scheduler.models import User
from dept_scheduler.services.business_trip import BusinessTripValidator, ConflictResult
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.utils.permissions import Principal

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None, notifier: Optional[NotificationService] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()
        self.notifier = notifier or NotificationService(db, self.broadcaster)

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def remaining_attempts(self, user: User) -> int:
        return max(0, Settings.AUTH["max_failed_logins"] - (user.failed_login_attempts or 0))

    def record_failed_login(self, user_id: int) -> User:
        """Count a failed password check; lock the account at the limit and tell the admins.

        Called by the identity service after it rejects a password.
        """
        user = self.get_user(user_id)
        if user.is_locked:
            return user

        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        just_locked = user.failed_login_attempts >= Settings.AUTH["max_failed_logins"]
        if just_locked:
            user.is_locked = True
        self.db.commit()
        self.db.refresh(user)

        if just_locked:
            logger.warning(f"User {user.id} locked after {user.failed_login_attempts} failed logins")
            self.notifier.notify(
                self.notifier.admins(),
                "Account locked",
                f"Account {user.name} ({user.email}) was locked after {user.failed_login_attempts} failed login attempts.",
                ref_type="user",
                ref_id=user.id,
            )
        return user

    def record_successful_login(self, user_id: int) -> User:
        """Reset the failure counter after the identity service accepted a password.

        A locked account stays locked and is refused.
        """
        user = self.get_user(user_id)
        if user.is_locked:
            raise ForbiddenError("Account is locked. Please contact an administrator.", details={"locked": True})
        if user.failed_login_attempts:
            user.failed_login_attempts = 0
            self.db.commit()
            self.db.refresh(user)
        return user

    def unlock(self, user_id: int, principal: Principal) -> User:
        if not principal.is_admin:
            raise ForbiddenError("Only admin can unlock accounts")
        user = self.get_user(user_id)
        user.is_locked = False
        user.failed_login_attempts = 0
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User {user.id} unlocked by admin {principal.user_id}")
        self.notifier.notify(
            user.id,
            "Account unlocked",
            "An administrator unlocked your account. You can sign in again.",
            ref_type="user",
            ref_id=user.id,
        )
        return user

    def check_trip_conflict(
        self,
        user_id: int,
        principal: Principal,
        start: Optional[datetime],
        end: Optional[datetime] = None,
    ) -> ConflictResult:
        """Business-trip pre-check for a user before scheduling them.

        Employees may only check themselves and managers only users of their
        own department.
        """
        if not start:
            raise ValidationError("Missing start time")
        if principal.is_employee and principal.user_id != user_id:
            raise ForbiddenError("Forbidden")
        if principal.is_manager:
            user = self.get_user(user_id)
            if user.department_id != principal.department_id:
                raise ForbiddenError("Cross-department not allowed")
        return BusinessTripValidator(self.db).check_conflict(user_id, start, end)
