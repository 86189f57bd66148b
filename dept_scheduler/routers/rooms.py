# dept_scheduler/routers/rooms.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.event import RoomCreate, RoomUpdate, RoomOut
from dept_scheduler.services.catalog_service import RoomService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_room_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> RoomService:
    return RoomService(db, broadcaster)


@router.get("/", response_model=List[RoomOut])
def list_rooms(service: RoomService = Depends(get_room_service), principal: Principal = Depends(get_principal)):
    return service.list_rooms()


@router.post("/", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(payload: RoomCreate, service: RoomService = Depends(get_room_service), principal: Principal = Depends(get_principal)):
    return service.create_room(payload, principal)


@router.put("/{room_id}", response_model=RoomOut)
def update_room(room_id: int, payload: RoomUpdate, service: RoomService = Depends(get_room_service), principal: Principal = Depends(get_principal)):
    return service.update_room(room_id, payload, principal)


@router.delete("/{room_id}")
def delete_room(room_id: int, service: RoomService = Depends(get_room_service), principal: Principal = Depends(get_principal)):
    service.delete_room(room_id, principal)
    return {"message": "Deleted"}
