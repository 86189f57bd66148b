# dept_scheduler/services/business_trip.py
"""
Business-trip conflict checks.

An approved ``work`` event occupies every participant's calendar for its
whole window. Before a user is placed on another event or handed a task we
look for such a trip overlapping the requested window.

Lookups fail open: if the database cannot be queried the check reports no
conflict instead of blocking the unrelated write that asked for it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, sessionmaker

from dept_scheduler.config.settings import Settings
from dept_scheduler.models import Event, EventStatus, EventType, Participant
from dept_scheduler.services.intervals import overlaps
from dept_scheduler.utils.dates import to_naive_utc

logger = logging.getLogger(__name__)


@dataclass
class ConflictResult:
    has_conflict: bool = False
    details: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


@dataclass
class UserConflict:
    user_id: int
    has_conflict: bool
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = field(default=None)


def format_datetime(value: Optional[datetime]) -> str:
    """DD/MM/YYYY HH:MM, 24h clock"""
    if not value:
        return ""
    return value.strftime("%d/%m/%Y %H:%M")


def conflict_message(event: Event) -> str:
    return (
        f'This employee has a business trip "{event.title}" '
        f"from {format_datetime(event.start_time)} to {format_datetime(event.end_time)}"
    )


class BusinessTripValidator:
    def __init__(self, db: Session, session_factory: Optional[Callable[[], Session]] = None):
        self.db = db
        self.session_factory = session_factory

    def check_conflict(self, user_id: Optional[int], start: Optional[datetime], end: Optional[datetime] = None) -> ConflictResult:
        """Find an approved business trip of ``user_id`` overlapping ``[start, end)``.

        ``end`` defaults to ``start``, turning the query into a point-in-time
        check.
        """
        return self._check(self.db, user_id, start, end)

    def check_conflicts(self, user_ids: Sequence[int], start: Optional[datetime], end: Optional[datetime] = None) -> List[UserConflict]:
        """Check several users at once.

        Each lookup runs in its own thread with its own session; results come
        back in the order of ``user_ids``. Without a ``session_factory`` the
        lookups share ``self.db`` and run one after another.
        """
        if not user_ids:
            return []

        def check_one(user_id: int) -> UserConflict:
            result = self._check_isolated(user_id, start, end)
            return UserConflict(
                user_id=user_id,
                has_conflict=result.has_conflict,
                message=result.message,
                details=result.details,
            )

        if self.session_factory is None:
            return [check_one(user_id) for user_id in user_ids]

        workers = max(1, min(len(user_ids), Settings.CONFLICTS["max_workers"]))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(check_one, user_ids))

    @classmethod
    def for_session(cls, db: Session) -> "BusinessTripValidator":
        """Validator whose batch lookups open sessions on ``db``'s engine"""
        return cls(db, session_factory=sessionmaker(bind=db.get_bind(), autocommit=False, autoflush=False))

    def _check_isolated(self, user_id: int, start, end) -> ConflictResult:
        if self.session_factory is None:
            return self._check(self.db, user_id, start, end)
        try:
            session = self.session_factory()
        except Exception:
            logger.exception("Error opening session for business trip check")
            return ConflictResult()
        try:
            return self._check(session, user_id, start, end)
        finally:
            session.close()

    def _check(self, db: Session, user_id, start, end) -> ConflictResult:
        if not user_id or not start:
            return ConflictResult()

        check_start = to_naive_utc(start)
        check_end = to_naive_utc(end) or check_start
        try:
            candidates = db.query(Event).join(Participant, Participant.event_id == Event.id).filter(
                Participant.user_id == user_id,
                Event.type == EventType.WORK,
                Event.status == EventStatus.APPROVED,
                Event.start_time <= check_end,
                Event.end_time > check_start,
            ).order_by(Event.start_time).all()
        except Exception:
            logger.exception(f"Error checking business trip conflict for user {user_id}")
            self._reset(db)
            return ConflictResult()

        for event in candidates:
            if overlaps(event.start_time, event.end_time, check_start, check_end):
                return ConflictResult(
                    has_conflict=True,
                    details={
                        "event_id": event.id,
                        "title": event.title,
                        "start_time": event.start_time,
                        "end_time": event.end_time,
                    },
                    message=conflict_message(event),
                )
        return ConflictResult()

    @staticmethod
    def _reset(db: Session) -> None:
        # Checks run before any write of the request, nothing pending is lost
        try:
            db.rollback()
        except Exception:
            logger.exception("Error rolling back after failed business trip check")
