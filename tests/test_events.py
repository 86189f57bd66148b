from datetime import timedelta

import pytest

from dept_scheduler.exceptions import ConflictError, ForbiddenError, NotFoundError, StateError, ValidationError
from dept_scheduler.models import Event, EventStatus, EventType, Notification, ParticipantStatus, Room
from dept_scheduler.schemas.event import EventCreate, EventUpdate
from dept_scheduler.services.business_trip import BusinessTripValidator
from dept_scheduler.services.event_service import EventService

from conftest import NOW


@pytest.fixture
def service(db, broadcaster):
    return EventService(db, broadcaster, trip_validator=BusinessTripValidator(db))


@pytest.fixture
def room(db):
    room = Room(name="Blue room", location="2F", capacity=8)
    db.add(room)
    db.commit()
    return room


def meeting(start, hours=1, **fields):
    fields.setdefault("title", "Weekly sync")
    return EventCreate(start_time=start, end_time=start + timedelta(hours=hours), type=EventType.MEETING, **fields)


def titles_for(db, user):
    return [n.title for n in db.query(Notification).filter(Notification.user_id == user.id).order_by(Notification.id)]


def test_room_double_booking(service, principals, room):
    service.create_event(meeting(NOW, room_id=room.id), principals["manager"])

    with pytest.raises(ConflictError) as exc_info:
        service.create_event(meeting(NOW + timedelta(minutes=30), room_id=room.id), principals["manager"])
    assert exc_info.value.message == "Room busy for selected time"

    # back to back is fine
    service.create_event(meeting(NOW + timedelta(hours=1), room_id=room.id), principals["manager"])


def test_rejected_events_do_not_hold_the_room(service, principals, room):
    first = service.create_event(meeting(NOW, room_id=room.id), principals["manager"])
    service.update_event(first.id, EventUpdate(status=EventStatus.REJECTED), principals["manager"])

    second = service.create_event(meeting(NOW, room_id=room.id), principals["manager"])
    assert second.room_id == room.id


def test_work_events_skip_the_room_check(service, principals, room):
    service.create_event(meeting(NOW, room_id=room.id), principals["manager"])
    trip = EventCreate(title="Offsite", start_time=NOW, end_time=NOW + timedelta(hours=2), room_id=room.id)
    assert service.create_event(trip, principals["manager"]).type == EventType.WORK


def test_unknown_room(service, principals):
    with pytest.raises(NotFoundError):
        service.create_event(meeting(NOW, room_id=99), principals["manager"])


def test_participant_on_business_trip_blocks_creation(db, service, principals, users, make_trip):
    make_trip([users["alice"]], start=NOW, hours=48)
    payload = meeting(NOW + timedelta(hours=1), participant_ids=[users["alice"].id, users["bob"].id])

    with pytest.raises(ConflictError) as exc_info:
        service.create_event(payload, principals["manager"])

    assert exc_info.value.message == (
        'Cannot create event: This employee has a business trip "Client visit" '
        "from 02/03/2026 09:00 to 04/03/2026 09:00"
    )
    assert exc_info.value.details == {"users": [users["alice"].id]}
    assert db.query(Event).count() == 1


def test_pending_trip_does_not_block(service, principals, users, make_trip):
    make_trip([users["alice"]], status=EventStatus.PENDING)
    event = service.create_event(meeting(NOW, participant_ids=[users["alice"].id]), principals["manager"])
    assert [p.user_id for p in event.participants] == [users["alice"].id]


def test_employee_events_always_start_pending(db, service, principals, users):
    event = service.create_event(meeting(NOW, status=EventStatus.APPROVED), principals["alice"])

    assert event.status == EventStatus.PENDING
    assert event.department_id == users["alice"].department_id
    assert "Event awaiting approval" in titles_for(db, users["manager"])
    assert "Event awaiting approval" in titles_for(db, users["admin"])
    assert "Event awaiting approval" not in titles_for(db, users["sales_manager"])
    assert titles_for(db, users["alice"]) == ["Event created"]


def test_manager_may_create_approved(service, principals):
    event = service.create_event(meeting(NOW, status=EventStatus.APPROVED), principals["manager"])
    assert event.status == EventStatus.APPROVED


def test_cannot_create_for_other_department(service, principals, departments):
    with pytest.raises(ForbiddenError):
        service.create_event(meeting(NOW, department_id=departments["sales"].id), principals["alice"])


def test_extra_departments_exclude_primary(service, principals, departments):
    eng, sales = departments["engineering"].id, departments["sales"].id
    event = service.create_event(meeting(NOW, department_ids=[eng, sales]), principals["admin"])

    assert event.department_id == eng
    assert [d.id for d in event.extra_departments] == [sales]


def test_status_lattice(service, principals):
    event = service.create_event(meeting(NOW), principals["alice"])

    event = service.update_event(event.id, EventUpdate(status=EventStatus.APPROVED), principals["manager"])
    assert event.status == EventStatus.APPROVED

    with pytest.raises(StateError):
        service.update_event(event.id, EventUpdate(status=EventStatus.PENDING), principals["manager"])

    event = service.update_event(event.id, EventUpdate(status=EventStatus.COMPLETED), principals["manager"])
    event = service.update_event(event.id, EventUpdate(status=EventStatus.PENDING), principals["admin"])
    assert event.status == EventStatus.PENDING


def test_owner_cannot_change_status(service, principals):
    event = service.create_event(meeting(NOW), principals["alice"])
    with pytest.raises(ForbiddenError):
        service.update_event(event.id, EventUpdate(status=EventStatus.APPROVED), principals["alice"])


def test_detail_edits_are_locked_after_approval(service, principals):
    event = service.create_event(meeting(NOW), principals["alice"])
    event = service.update_event(event.id, EventUpdate(title="Sync (moved)"), principals["alice"])
    assert event.title == "Sync (moved)"

    service.update_event(event.id, EventUpdate(status=EventStatus.APPROVED), principals["manager"])

    with pytest.raises(StateError):
        service.update_event(event.id, EventUpdate(title="Again"), principals["alice"])
    with pytest.raises(StateError):
        service.update_event(event.id, EventUpdate(title="Again"), principals["manager"])
    assert service.update_event(event.id, EventUpdate(title="Again"), principals["admin"]).title == "Again"


def test_update_rejects_inverted_window(service, principals):
    event = service.create_event(meeting(NOW), principals["manager"])
    with pytest.raises(ValidationError):
        service.update_event(event.id, EventUpdate(end_time=NOW - timedelta(hours=1)), principals["manager"])


def test_moving_a_meeting_rechecks_the_room(service, principals, room):
    service.create_event(meeting(NOW, room_id=room.id), principals["manager"])
    later = service.create_event(meeting(NOW + timedelta(hours=2), room_id=room.id), principals["manager"])

    with pytest.raises(ConflictError):
        service.update_event(later.id, EventUpdate(start_time=NOW + timedelta(minutes=30)), principals["manager"])

    moved = service.update_event(later.id, EventUpdate(start_time=NOW + timedelta(hours=1)), principals["manager"])
    assert moved.start_time == NOW + timedelta(hours=1)


def test_approval_notifies_audience(db, service, principals, users):
    event = service.create_event(meeting(NOW, participant_ids=[users["carol"].id]), principals["alice"])
    service.update_event(event.id, EventUpdate(status=EventStatus.APPROVED), principals["manager"])

    assert "Event approved" in titles_for(db, users["carol"])
    assert "Event approved" in titles_for(db, users["alice"])
    assert "Event approved" in titles_for(db, users["bob"])
    assert "Event approved" not in titles_for(db, users["sales_manager"])


def test_delete_rules(db, service, principals, users):
    approved = service.create_event(
        meeting(NOW, status=EventStatus.APPROVED, participant_ids=[users["bob"].id]),
        principals["manager"],
    )
    with pytest.raises(ForbiddenError):
        service.delete_event(approved.id, principals["manager"])
    service.delete_event(approved.id, principals["admin"])
    assert "Event cancelled" in titles_for(db, users["bob"])

    pending = service.create_event(meeting(NOW), principals["alice"])
    with pytest.raises(ForbiddenError):
        service.delete_event(pending.id, principals["bob"])
    service.delete_event(pending.id, principals["alice"])
    assert db.query(Event).count() == 0


def test_list_events_scoping(service, principals, departments):
    service.create_event(meeting(NOW, title="Eng sync"), principals["manager"])
    service.create_event(meeting(NOW, title="All hands", is_global=True), principals["admin"])
    service.create_event(meeting(NOW, title="Sales sync"), principals["sales_manager"])

    assert {e.title for e in service.list_events(principals["admin"])} == {"Eng sync", "All hands", "Sales sync"}
    assert {e.title for e in service.list_events(principals["carol"])} == {"All hands", "Sales sync"}
    assert {e.title for e in service.list_events(principals["alice"], mine=True)} == set()


def test_add_participants(db, service, principals, users, make_trip):
    event = service.create_event(meeting(NOW, participant_ids=[users["alice"].id]), principals["manager"])

    added = service.add_participants(event.id, [users["alice"].id, users["bob"].id], principals["manager"])
    assert [p.user_id for p in added] == [users["bob"].id]
    assert service.add_participants(event.id, [users["bob"].id], principals["manager"]) == []

    make_trip([users["carol"]])
    with pytest.raises(ConflictError) as exc_info:
        service.add_participants(event.id, [users["carol"].id], principals["manager"])
    assert exc_info.value.message.startswith("Cannot add participants: ")

    with pytest.raises(NotFoundError):
        service.add_participants(event.id, [999], principals["manager"])
    with pytest.raises(ForbiddenError):
        service.add_participants(event.id, [users["carol"].id], principals["bob"])
    with pytest.raises(ValidationError):
        service.list_participants(None)
    assert len(service.list_participants(event.id)) == 2


def test_rsvp_is_self_only(service, principals, users):
    event = service.create_event(meeting(NOW, participant_ids=[users["alice"].id]), principals["manager"])
    participant = event.participants[0]

    with pytest.raises(ForbiddenError):
        service.rsvp(participant.id, principals["bob"], ParticipantStatus.ACCEPTED)

    assert service.rsvp(participant.id, principals["alice"], ParticipantStatus.ACCEPTED).status == ParticipantStatus.ACCEPTED


def test_adjustment_request(db, service, principals, users):
    event = service.create_event(
        meeting(NOW, participant_ids=[users["alice"].id], department_id=users["alice"].department_id),
        principals["admin"],
    )
    participant = event.participants[0]

    with pytest.raises(ValidationError):
        service.request_adjustment(participant.id, principals["alice"], note="  ")

    updated = service.request_adjustment(participant.id, principals["alice"], reason="Dentist at 9")
    assert updated.adjustment_note == "Dentist at 9"
    assert "Schedule adjustment requested" in titles_for(db, users["admin"])
    assert "Schedule adjustment requested" in titles_for(db, users["manager"])
