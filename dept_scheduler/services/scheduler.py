# dept_scheduler/services/scheduler.py
"""
Scheduler service for upcoming event reminders
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from dept_scheduler.config.settings import Settings
from dept_scheduler.database import SessionLocal
from dept_scheduler.models import Event, EventStatus, Notification
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Event starting soon"


def send_event_reminders(db: Session, broadcaster: Optional[Broadcaster] = None, now: Optional[datetime] = None) -> int:
    """Remind participants and creators of approved events starting soon.

    Each event is reminded once; returns the number of events reminded.
    """
    now = now or datetime.utcnow()
    horizon = now + timedelta(minutes=Settings.REMINDERS["lead_minutes"])
    notifier = NotificationService(db, broadcaster)

    events = db.query(Event).filter(
        Event.status == EventStatus.APPROVED,
        Event.start_time >= now,
        Event.start_time <= horizon,
    ).order_by(Event.start_time).all()

    reminded = 0
    for event in events:
        already_sent = db.query(Notification.id).filter(
            Notification.ref_type == "event",
            Notification.ref_id == event.id,
            Notification.title == REMINDER_TITLE,
        ).first()
        if already_sent:
            logger.debug(f"Reminder already sent for event {event.id}, skipping")
            continue

        recipients = [p.user_id for p in event.participants] + [event.created_by]
        notifier.notify(recipients, REMINDER_TITLE, event.title, ref_type="event", ref_id=event.id)
        reminded += 1

    logger.info(f"Sent reminders for {reminded} of {len(events)} upcoming events")
    return reminded


class ReminderScheduler:
    """Periodic reminder job on an asyncio scheduler"""

    def __init__(self, broadcaster: Optional[Broadcaster] = None, session_factory: Callable[[], Session] = SessionLocal):
        self.scheduler = AsyncIOScheduler()
        self.broadcaster = broadcaster or NullBroadcaster()
        self.session_factory = session_factory
        self.is_running = False

    def start(self):
        """Register the reminder job and start the scheduler; calling twice is a no-op"""
        if self.is_running:
            return
        self.scheduler.add_job(
            self.check_upcoming_events,
            trigger=IntervalTrigger(minutes=Settings.REMINDERS["interval_minutes"]),
            id='event_reminders',
            name='Event reminders',
            replace_existing=True
        )
        self.scheduler.start()
        self.is_running = True
        logger.info("Reminder scheduler started")

    def stop(self):
        if self.is_running:
            self.scheduler.shutdown()
            self.is_running = False
            logger.info("Reminder scheduler stopped")

    def check_upcoming_events(self):
        db = self.session_factory()
        try:
            send_event_reminders(db, self.broadcaster)
        except Exception:
            logger.exception("Reminder job error")
            db.rollback()
        finally:
            db.close()

    def get_status(self) -> Dict[str, Any]:
        if not self.is_running:
            return {"status": "stopped", "jobs": []}
        return {
            "status": "running",
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                    "trigger": str(job.trigger),
                }
                for job in self.scheduler.get_jobs()
            ],
        }
