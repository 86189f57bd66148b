# dept_scheduler/routers/notifications.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.exceptions import NotFoundError
from dept_scheduler.models import Notification
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.notification import NotificationOut, NotificationMarkAllRead
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


@router.get("/", response_model=List[NotificationOut])
def get_notifications(
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    """Get notifications for the current user"""
    query = db.query(Notification).filter(Notification.user_id == principal.user_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(min(limit, 200)).all()


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    principal: Principal = Depends(get_principal)
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == principal.user_id
    ).first()
    if not notification:
        raise NotFoundError("Notification", notification_id)
    return NotificationService(db, broadcaster).mark_read(notification)


@router.put("/read-all", response_model=NotificationMarkAllRead)
def mark_all_notifications_as_read(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    return {"updated": NotificationService(db).mark_all_read(principal.user_id)}
