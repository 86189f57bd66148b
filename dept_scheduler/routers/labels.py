# dept_scheduler/routers/labels.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.task import LabelCreate, LabelUpdate, LabelOut
from dept_scheduler.services.catalog_service import LabelService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_label_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> LabelService:
    return LabelService(db, broadcaster)


@router.get("/", response_model=List[LabelOut])
def list_labels(service: LabelService = Depends(get_label_service), principal: Principal = Depends(get_principal)):
    return service.list_labels()


@router.post("/", response_model=LabelOut, status_code=status.HTTP_201_CREATED)
def create_label(payload: LabelCreate, service: LabelService = Depends(get_label_service), principal: Principal = Depends(get_principal)):
    return service.create_label(payload, principal)


@router.put("/{label_id}", response_model=LabelOut)
def update_label(label_id: int, payload: LabelUpdate, service: LabelService = Depends(get_label_service), principal: Principal = Depends(get_principal)):
    return service.update_label(label_id, payload, principal)


@router.delete("/{label_id}")
def delete_label(label_id: int, service: LabelService = Depends(get_label_service), principal: Principal = Depends(get_principal)):
    service.delete_label(label_id, principal)
    return {"message": "Deleted"}
