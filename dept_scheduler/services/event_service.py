# dept_scheduler/services/event_service.py
"""
Calendar events and their participants.

Events move through pending -> approved/rejected -> completed. Creating or
editing a meeting with a room checks the room for overlapping bookings, and
placing participants checks each of them for an approved business trip in
the same window. Both checks run before anything is written.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from dept_scheduler.config.settings import Settings
from dept_scheduler.exceptions import ConflictError, ForbiddenError, NotFoundError, StateError, ValidationError
from dept_scheduler.models import (
    Department,
    Event,
    EventStatus,
    EventType,
    Participant,
    ParticipantStatus,
    Room,
    User,
)
from dept_scheduler.schemas.event import EventCreate, EventUpdate
from dept_scheduler.services.business_trip import BusinessTripValidator
from dept_scheduler.services.intervals import overlaps
from dept_scheduler.services.notification_service import NotificationService
from dept_scheduler.services.status import check_event_transition
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.utils.dates import to_naive_utc
from dept_scheduler.utils.permissions import Principal, can_manage_event, is_owner

logger = logging.getLogger(__name__)

DETAIL_FIELDS = ("title", "description", "start_time", "end_time", "room_id")

STATUS_TITLES = {
    EventStatus.APPROVED: "Event approved",
    EventStatus.REJECTED: "Event rejected",
}


class EventService:
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
        self.trip_validator = trip_validator or BusinessTripValidator.for_session(db)

    # ----- lookups -------------------------------------------------------

    def get_event(self, event_id: int) -> Event:
        event = self.db.query(Event).options(
            selectinload(Event.participants),
            selectinload(Event.extra_departments),
        ).filter(Event.id == event_id).first()
        if not event:
            raise NotFoundError("Event", event_id)
        return event

    def list_events(
        self,
        principal: Principal,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        status: Optional[EventStatus] = None,
        type: Optional[EventType] = None,
        room_id: Optional[int] = None,
        created_by: Optional[int] = None,
        department_id: Optional[int] = None,
        mine: bool = False,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Event]:
        """Admins see every event; everyone else their own department plus global events"""
        start_from, start_to = to_naive_utc(start_from), to_naive_utc(start_to)
        query = self.db.query(Event).options(
            selectinload(Event.participants),
            selectinload(Event.extra_departments),
        )
        if start_from:
            query = query.filter(Event.start_time >= start_from)
        if start_to:
            query = query.filter(Event.start_time <= start_to)
        if status:
            query = query.filter(Event.status == status)
        if type:
            query = query.filter(Event.type == type)
        if room_id:
            query = query.filter(Event.room_id == room_id)
        if created_by:
            query = query.filter(Event.created_by == created_by)
        if mine:
            query = query.filter(Event.created_by == principal.user_id)
        if department_id:
            query = query.filter(Event.department_id == department_id)

        if not principal.is_admin:
            if principal.department_id is None:
                dept_cond = Event.department_id.is_(None)
            else:
                dept_cond = Event.department_id == principal.department_id
            query = query.filter(or_(dept_cond, Event.is_global.is_(True)))

        limit = Settings.clamp_limit(limit, Settings.EVENTS)
        return query.order_by(Event.start_time, Event.id).offset(max(offset, 0)).limit(limit).all()

    # ----- checks --------------------------------------------------------

    def ensure_room_free(self, room_id: int, start: datetime, end: datetime, exclude_event_id: Optional[int] = None) -> None:
        """Reject a booking that overlaps another non-rejected event in the same room"""
        start, end = to_naive_utc(start), to_naive_utc(end)
        query = self.db.query(Event).filter(
            Event.room_id == room_id,
            Event.status != EventStatus.REJECTED,
            Event.start_time <= end,
            Event.end_time >= start,
        )
        if exclude_event_id is not None:
            query = query.filter(Event.id != exclude_event_id)
        for other in query.all():
            if overlaps(other.start_time, other.end_time, start, end):
                raise ConflictError(
                    "Room busy for selected time",
                    details={"room_id": room_id, "event_id": other.id},
                )

    def ensure_no_trip_conflicts(self, user_ids: List[int], start: datetime, end: datetime, prefix: str) -> None:
        conflicts = [c for c in self.trip_validator.check_conflicts(user_ids, start, end) if c.has_conflict]
        if conflicts:
            raise ConflictError(
                f"{prefix}: " + "; ".join(c.message for c in conflicts),
                details={"users": [c.user_id for c in conflicts]},
            )

    def _ensure_room(self, room_id: Optional[int]) -> None:
        if room_id and not self.db.query(Room.id).filter(Room.id == room_id).first():
            raise NotFoundError("Room", room_id)

    def _ensure_users(self, user_ids: List[int]) -> None:
        if not user_ids:
            return
        found = {row.id for row in self.db.query(User.id).filter(User.id.in_(user_ids)).all()}
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            raise NotFoundError("User", missing, "One or more users not found")

    # ----- writes --------------------------------------------------------

    def create_event(self, payload: EventCreate, principal: Principal) -> Event:
        if payload.end_time <= payload.start_time:
            raise ValidationError("End time must be after start time")
        if not principal.is_admin and payload.department_id and payload.department_id != principal.department_id:
            raise ForbiddenError("Cannot create event for another department")

        # Employees always submit for approval
        status = EventStatus.PENDING
        if (principal.is_admin or principal.is_manager) and payload.status:
            status = payload.status

        department_ids = list(dict.fromkeys(payload.department_ids))
        primary_department = payload.department_id or (department_ids[0] if department_ids else None)
        if primary_department is None and not payload.is_global:
            primary_department = principal.department_id

        self._ensure_room(payload.room_id)
        if payload.type == EventType.MEETING and payload.room_id:
            self.ensure_room_free(payload.room_id, payload.start_time, payload.end_time)

        participant_ids = list(dict.fromkeys(payload.participant_ids))
        self._ensure_users(participant_ids)
        self.ensure_no_trip_conflicts(participant_ids, payload.start_time, payload.end_time, "Cannot create event")

        extra_departments = []
        if department_ids:
            extra_departments = self.db.query(Department).filter(Department.id.in_(department_ids)).all()
            if len(extra_departments) != len(department_ids):
                raise NotFoundError("Department", department_ids, "One or more departments not found")

        event = Event(
            title=payload.title,
            description=payload.description,
            start_time=payload.start_time,
            end_time=payload.end_time,
            room_id=payload.room_id,
            created_by=principal.user_id,
            repeat=payload.repeat or None,
            department_id=primary_department,
            is_global=payload.is_global,
            status=status,
            type=payload.type,
        )
        event.extra_departments = [d for d in extra_departments if d.id != primary_department]
        event.participants = [Participant(user_id=uid) for uid in participant_ids]
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)

        logger.info(f"Event {event.id} created by user {principal.user_id} with status {status.value}")
        self.broadcaster.emit("events", "create", event.id)

        self.notifier.notify(participant_ids, "New event", f"You are invited to: {event.title}", ref_type="event", ref_id=event.id)
        self.notifier.notify(principal.user_id, "Event created", f"Created: {event.title}", ref_type="event", ref_id=event.id)
        if status == EventStatus.PENDING:
            approvers = self.notifier.department_managers(event.department_id) + self.notifier.admins()
            self.notifier.notify(approvers, "Event awaiting approval", f"New event awaiting approval: {event.title}",
                                 ref_type="event", ref_id=event.id)
        return event

    def update_event(self, event_id: int, payload: EventUpdate, principal: Principal) -> Event:
        event = self.get_event(event_id)
        owner = is_owner(principal, event)
        manager = can_manage_event(principal, event)
        if not (owner or manager):
            raise ForbiddenError("Forbidden")

        data = payload.model_dump(exclude_unset=True)
        for key in ("title", "start_time", "end_time", "status"):
            if key in data and data[key] is None:
                data.pop(key)
        details = [key for key in DETAIL_FIELDS if key in data]
        new_status = data.pop("status", None)

        if details and not principal.is_admin:
            if event.status == EventStatus.APPROVED:
                raise StateError("Cannot edit approved event details")
            if owner and event.status != EventStatus.PENDING:
                raise StateError("Cannot edit event details after approval stage")

        if new_status is not None:
            if not manager:
                raise ForbiddenError("Only manager/admin can change status")
            check_event_transition(event.status, new_status, is_admin=principal.is_admin)

        start_time = data.get("start_time", event.start_time)
        end_time = data.get("end_time", event.end_time)
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")

        room_id = data.get("room_id", event.room_id)
        if "room_id" in data:
            self._ensure_room(room_id)
        if room_id and event.type == EventType.MEETING and {"room_id", "start_time", "end_time"} & set(data):
            self.ensure_room_free(room_id, start_time, end_time, exclude_event_id=event.id)

        for key, value in data.items():
            setattr(event, key, value)
        if new_status is not None:
            event.status = new_status
        self.db.commit()
        self.db.refresh(event)

        logger.info(f"Event {event.id} updated by user {principal.user_id}")
        self.broadcaster.emit("events", "update", event.id)

        if new_status is not None or (details and event.status != EventStatus.APPROVED):
            if new_status is not None:
                title = STATUS_TITLES.get(event.status, "Event updated")
                message = f"{event.title} - Status: {event.status.value}"
            else:
                title = "Event updated (pending approval)"
                message = f'Details of event "{event.title}" have changed'
            self.notifier.notify(self._audience(event), title, message, ref_type="event", ref_id=event.id)
        return event

    def delete_event(self, event_id: int, principal: Principal) -> None:
        event = self.get_event(event_id)
        if not (is_owner(principal, event) or can_manage_event(principal, event)):
            raise ForbiddenError("Forbidden")
        if event.status == EventStatus.APPROVED and not principal.is_admin:
            raise ForbiddenError("Only admin can delete approved events")

        participant_ids = [p.user_id for p in event.participants]
        title = event.title
        self.db.delete(event)
        self.db.commit()

        logger.info(f"Event {event_id} deleted by user {principal.user_id}")
        self.broadcaster.emit("events", "delete", event_id)
        self.notifier.notify(participant_ids, "Event cancelled", title, ref_type="event", ref_id=event_id)

    def _audience(self, event: Event) -> List[int]:
        """Participants, the creator and the members of every department of the event"""
        ids = [p.user_id for p in event.participants] + [event.created_by]
        department_ids = [d.id for d in event.extra_departments]
        if event.department_id:
            department_ids.append(event.department_id)
        if department_ids:
            try:
                rows = self.db.query(User.id).filter(User.department_id.in_(department_ids)).all()
                ids.extend(r.id for r in rows)
            except Exception:
                logger.exception(f"Error loading department members for event {event.id}")
        return list(dict.fromkeys(ids))

    # ----- participants --------------------------------------------------

    def get_participant(self, participant_id: int) -> Participant:
        participant = self.db.query(Participant).filter(Participant.id == participant_id).first()
        if not participant:
            raise NotFoundError("Participant", participant_id)
        return participant

    def list_participants(self, event_id: Optional[int]) -> List[Participant]:
        if not event_id:
            raise ValidationError("Missing event_id")
        return self.db.query(Participant).filter(Participant.event_id == event_id).order_by(Participant.id).all()

    def add_participants(self, event_id: Optional[int], user_ids: Iterable[int], principal: Principal) -> List[Participant]:
        """Invite users to an event; users already on it are skipped"""
        if not event_id:
            raise ValidationError("Missing event_id or user_ids")
        event = self.get_event(event_id)
        if not (is_owner(principal, event) or can_manage_event(principal, event)):
            raise ForbiddenError("Forbidden")

        present = {p.user_id for p in event.participants}
        new_ids = [uid for uid in dict.fromkeys(user_ids) if uid not in present]
        if not new_ids:
            return []
        self._ensure_users(new_ids)
        self.ensure_no_trip_conflicts(new_ids, event.start_time, event.end_time, "Cannot add participants")

        rows = [Participant(event_id=event.id, user_id=uid) for uid in new_ids]
        self.db.add_all(rows)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Participant already added", details={"event_id": event.id})
        for row in rows:
            self.db.refresh(row)

        self.broadcaster.emit("participants", "create", event.id)
        self.notifier.notify(new_ids, "New event", f"You are invited to: {event.title}", ref_type="event", ref_id=event.id)
        return rows

    def rsvp(self, participant_id: int, principal: Principal, status: ParticipantStatus) -> Participant:
        """Only the participant may answer for themselves"""
        participant = self.get_participant(participant_id)
        if participant.user_id != principal.user_id:
            raise ForbiddenError("Forbidden")
        try:
            participant.status = ParticipantStatus(status)
        except ValueError:
            raise ValidationError("Invalid status", details={"status": status})
        self.db.commit()
        self.db.refresh(participant)
        self.broadcaster.emit("participants", "update", participant.id)
        return participant

    def request_adjustment(self, participant_id: int, principal: Principal, note: Optional[str] = None, reason: Optional[str] = None) -> Participant:
        """Store an adjustment note and tell the event creator and department managers"""
        text = note.strip() if isinstance(note, str) and note.strip() else (reason or "").strip()
        if not text:
            raise ValidationError("Missing note/reason")

        participant = self.get_participant(participant_id)
        if participant.user_id != principal.user_id:
            raise ForbiddenError("Forbidden")

        participant.adjustment_note = text
        self.db.commit()
        self.db.refresh(participant)

        event = participant.event
        targets = [event.created_by] + self.notifier.managers_or_creator(event.department_id, None)
        self.notifier.notify(targets, "Schedule adjustment requested",
                             f"A participant requested an adjustment: {event.title}", ref_type="event", ref_id=event.id)
        self.broadcaster.emit("participants", "update", participant.id)
        return participant
