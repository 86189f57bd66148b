# dept_scheduler/routers/events.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.models.event import EventStatus, EventType
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas import event as event_schema
from dept_scheduler.services.event_service import EventService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_event_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> EventService:
    return EventService(db, broadcaster)


@router.get("/", response_model=List[event_schema.EventOut])
def list_events(
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
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.list_events(
        principal,
        start_from=start_from,
        start_to=start_to,
        status=status,
        type=type,
        room_id=room_id,
        created_by=created_by,
        department_id=department_id,
        mine=mine,
        limit=limit,
        offset=offset,
    )


@router.get("/{event_id}", response_model=event_schema.EventOut)
def get_event(
    event_id: int,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.get_event(event_id)


@router.post("/", response_model=event_schema.EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: event_schema.EventCreate,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.create_event(payload, principal)


@router.put("/{event_id}", response_model=event_schema.EventOut)
def update_event(
    event_id: int,
    payload: event_schema.EventUpdate,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.update_event(event_id, payload, principal)


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    service.delete_event(event_id, principal)
    return {"message": "Deleted"}
