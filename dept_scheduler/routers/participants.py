# dept_scheduler/routers/participants.py
from typing import List

from fastapi import APIRouter, Depends, status

from dept_scheduler.routers.events import get_event_service
from dept_scheduler.schemas import event as event_schema
from dept_scheduler.services.event_service import EventService
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


@router.get("/", response_model=List[event_schema.ParticipantOut])
def list_participants(
    event_id: int,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.list_participants(event_id)


@router.post("/", response_model=List[event_schema.ParticipantOut], status_code=status.HTTP_201_CREATED)
def add_participants(
    payload: event_schema.ParticipantsAdd,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.add_participants(payload.event_id, payload.user_ids, principal)


@router.put("/{participant_id}", response_model=event_schema.ParticipantOut)
def rsvp(
    participant_id: int,
    payload: event_schema.ParticipantRSVP,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.rsvp(participant_id, principal, payload.status)


@router.post("/{participant_id}/request-adjustment", response_model=event_schema.ParticipantOut)
def request_adjustment(
    participant_id: int,
    payload: event_schema.AdjustmentRequest,
    service: EventService = Depends(get_event_service),
    principal: Principal = Depends(get_principal)
):
    return service.request_adjustment(participant_id, principal, note=payload.note, reason=payload.reason)
