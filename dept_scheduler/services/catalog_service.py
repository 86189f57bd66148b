# dept_scheduler/services/catalog_service.py
"""Rooms and labels: shared lookup data, written by managers and admins only."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from dept_scheduler.exceptions import NotFoundError
from dept_scheduler.models import Label, Room
from dept_scheduler.schemas.event import RoomCreate, RoomUpdate
from dept_scheduler.schemas.task import LabelCreate, LabelUpdate
from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster
from dept_scheduler.utils.permissions import Principal, require_manager_or_admin

logger = logging.getLogger(__name__)

DEFAULT_LABEL_COLOR = "#2D9CDB"


class RoomService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def get_room(self, room_id: int) -> Room:
        room = self.db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise NotFoundError("Room", room_id)
        return room

    def list_rooms(self) -> List[Room]:
        return self.db.query(Room).order_by(Room.name, Room.id).all()

    def create_room(self, payload: RoomCreate, principal: Principal) -> Room:
        require_manager_or_admin(principal)
        room = Room(name=payload.name, location=payload.location, capacity=payload.capacity)
        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        self.broadcaster.emit("rooms", "create", room.id)
        return room

    def update_room(self, room_id: int, payload: RoomUpdate, principal: Principal) -> Room:
        require_manager_or_admin(principal)
        room = self.get_room(room_id)
        data = payload.model_dump(exclude_unset=True)
        if data.get("name"):
            room.name = data["name"]
        if "location" in data:
            room.location = data["location"]
        if "capacity" in data:
            room.capacity = data["capacity"]
        self.db.commit()
        self.db.refresh(room)
        self.broadcaster.emit("rooms", "update", room.id)
        return room

    def delete_room(self, room_id: int, principal: Principal) -> None:
        require_manager_or_admin(principal)
        room = self.get_room(room_id)
        self.db.delete(room)
        self.db.commit()
        logger.info(f"Room {room_id} deleted by user {principal.user_id}")
        self.broadcaster.emit("rooms", "delete", room_id)


class LabelService:
    def __init__(self, db: Session, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or NullBroadcaster()

    def get_label(self, label_id: int) -> Label:
        label = self.db.query(Label).filter(Label.id == label_id).first()
        if not label:
            raise NotFoundError("Label", label_id)
        return label

    def list_labels(self) -> List[Label]:
        return self.db.query(Label).order_by(Label.created_at.desc(), Label.id.desc()).all()

    def create_label(self, payload: LabelCreate, principal: Principal) -> Label:
        require_manager_or_admin(principal)
        label = Label(name=payload.name, color=payload.color or DEFAULT_LABEL_COLOR)
        self.db.add(label)
        self.db.commit()
        self.db.refresh(label)
        self.broadcaster.emit("labels", "create", label.id)
        return label

    def update_label(self, label_id: int, payload: LabelUpdate, principal: Principal) -> Label:
        require_manager_or_admin(principal)
        label = self.get_label(label_id)
        if payload.name:
            label.name = payload.name
        if payload.color:
            label.color = payload.color
        self.db.commit()
        self.db.refresh(label)
        self.broadcaster.emit("labels", "update", label.id)
        return label

    def delete_label(self, label_id: int, principal: Principal) -> None:
        require_manager_or_admin(principal)
        label = self.get_label(label_id)
        self.db.delete(label)
        self.db.commit()
        self.broadcaster.emit("labels", "delete", label_id)
