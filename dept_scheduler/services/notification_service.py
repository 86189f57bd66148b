# dept_scheduler/services/notification_service.py
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from dept_scheduler.models import Notification, User, UserRole
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget in-app notifications.

    ``notify`` never raises: the triggering operation has already committed
    by the time it runs, and a failed notification must not change its
    outcome.
    """

    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def notify(
        self,
        user_ids: Union[int, Iterable[Optional[int]]],
        title: str,
        message: str,
        ref_type: Optional[str] = None,
        ref_id: Optional[int] = None,
    ) -> List[Notification]:
        """Create one notification per distinct user and push it live"""
        if isinstance(user_ids, int):
            user_ids = [user_ids]
        unique_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not unique_ids:
            return []

        try:
            created = [
                Notification(user_id=uid, title=title, message=message, ref_type=ref_type, ref_id=ref_id)
                for uid in unique_ids
            ]
            self.db.add_all(created)
            self.db.commit()
        except Exception:
            logger.exception(f"Error creating notifications '{title}' for users {unique_ids}")
            self.db.rollback()
            return []

        for n in created:
            try:
                self.broadcaster.send_to_user(n.user_id, "receiveNotification", {
                    "id": n.id,
                    "title": n.title,
                    "message": n.message,
                    "is_read": n.is_read,
                    "ref_type": n.ref_type,
                    "ref_id": n.ref_id,
                })
            except Exception:
                logger.exception(f"Error pushing notification {n.id} to user {n.user_id}")

        logger.info(f"Notification '{title}' sent to {len(created)} users")
        return created

    def department_managers(self, department_id: Optional[int]) -> List[int]:
        if department_id is None:
            return []
        rows = self.db.query(User.id).filter(
            User.role == UserRole.MANAGER,
            User.department_id == department_id
        ).all()
        return [r.id for r in rows]

    def admins(self) -> List[int]:
        return [r.id for r in self.db.query(User.id).filter(User.role == UserRole.ADMIN).all()]

    def managers_or_creator(self, department_id: Optional[int], creator_id: Optional[int]) -> List[int]:
        """Department managers, falling back to the creator when there are none"""
        try:
            ids = self.department_managers(department_id)
        except Exception:
            logger.exception(f"Error loading managers of department {department_id}")
            ids = []
        if ids:
            return ids
        return [creator_id] if creator_id else []

    def display_name(self, user_id: int, fallback: str = "An employee") -> str:
        try:
            user = self.db.query(User).filter(User.id == user_id).first()
        except Exception:
            logger.exception(f"Error loading user {user_id}")
            return fallback
        if not user:
            return fallback
        return user.name or user.email or fallback

    def mark_read(self, notification: Notification) -> Notification:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        count = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
        self.db.commit()
        return count
