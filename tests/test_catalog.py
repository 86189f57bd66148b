import pytest

from dept_scheduler.exceptions import ForbiddenError, NotFoundError
from dept_scheduler.schemas.event import RoomCreate, RoomUpdate
from dept_scheduler.schemas.task import LabelCreate, LabelUpdate
from dept_scheduler.services.catalog_service import LabelService, RoomService


def test_room_crud(db, principals, broadcaster):
    service = RoomService(db, broadcaster)
    room = service.create_room(RoomCreate(name="Blue room", capacity=6), principals["manager"])

    room = service.update_room(room.id, RoomUpdate(location="3F"), principals["admin"])
    assert (room.name, room.location, room.capacity) == ("Blue room", "3F", 6)

    with pytest.raises(ForbiddenError):
        service.delete_room(room.id, principals["alice"])
    service.delete_room(room.id, principals["manager"])
    with pytest.raises(NotFoundError):
        service.get_room(room.id)
    assert [e[:2] for e in broadcaster.emitted] == [("rooms", "create"), ("rooms", "update"), ("rooms", "delete")]


def test_labels(db, principals):
    service = LabelService(db)
    with pytest.raises(ForbiddenError):
        service.create_label(LabelCreate(name="urgent"), principals["bob"])

    label = service.create_label(LabelCreate(name="urgent"), principals["manager"])
    assert label.color == "#2D9CDB"

    label = service.update_label(label.id, LabelUpdate(color="#FF0000"), principals["manager"])
    assert (label.name, label.color) == ("urgent", "#FF0000")
    assert [item.name for item in service.list_labels()] == ["urgent"]
